from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, TypeVar

import gspread
from google.auth.exceptions import DefaultCredentialsError

from i18n_sync.core import metrics
from i18n_sync.core.observability import get_correlation_id
from i18n_sync.core.operational_logging import log_operational_error
from i18n_sync.domain.ports import RangeUpdate, RemoteTablePort, RowRange
from i18n_sync.domain.sync_errors import RemotePermissionError
from i18n_sync.infrastructure.sheets_client_puros import (
    build_delete_dimension_requests,
    build_values_batch_body,
    extract_values,
    extract_worksheet_from_operation,
    qualify_range,
    value_input_option,
)
from i18n_sync.infrastructure.sheets_errors import map_gspread_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SheetsTableClient(RemoteTablePort):
    """Tabla remota sobre una pestaña de Google Sheets vía gspread.

    No reintenta: cada fallo se traduce a la jerarquía de errores de sync y la
    política de reintentos la decide el orquestador.
    """

    def __init__(self, sheet_name: str, spreadsheet: gspread.Spreadsheet | None = None) -> None:
        self._sheet_name = sheet_name
        self._spreadsheet = spreadsheet
        self._table_id: int | None = None

    def open_spreadsheet(self, credentials_path: Path, spreadsheet_id: str) -> gspread.Spreadsheet:
        logger.info("Conectando a Google Sheets con credenciales: %s", Path(credentials_path).name)
        try:
            client = gspread.service_account(filename=str(credentials_path))
            spreadsheet = client.open_by_key(spreadsheet_id)
        except (
            gspread.exceptions.GSpreadException,
            FileNotFoundError,
            json.JSONDecodeError,
            DefaultCredentialsError,
            OSError,
        ) as exc:
            mapped_error = map_gspread_exception(exc)
            if isinstance(mapped_error, RemotePermissionError):
                self._log_permission_error(mapped_error, spreadsheet_id=spreadsheet_id)
            raise mapped_error from exc
        self._spreadsheet = spreadsheet
        self._table_id = None
        return spreadsheet

    def get_rows(self, range_a1: str | None = None) -> list[list[str]]:
        spreadsheet = self._require_spreadsheet()
        payload = self._call(
            f"values_get({self._sheet_name})",
            lambda: spreadsheet.values_get(qualify_range(self._sheet_name, range_a1)),
        )
        return extract_values(payload)

    def append_rows(self, rows: list[list[Any]], *, raw: bool = True) -> None:
        if not rows:
            return
        spreadsheet = self._require_spreadsheet()
        self._call(
            f"values_append({self._sheet_name})",
            lambda: spreadsheet.values_append(
                qualify_range(self._sheet_name, "A:A"),
                params={"valueInputOption": value_input_option(raw), "insertDataOption": "INSERT_ROWS"},
                body={"values": rows},
            ),
        )

    def update_rows(self, data: list[RangeUpdate], *, raw: bool = True) -> None:
        if not data:
            return
        spreadsheet = self._require_spreadsheet()
        body = build_values_batch_body(self._sheet_name, data, raw)
        self._call(f"values_batch_update({self._sheet_name})", lambda: spreadsheet.values_batch_update(body))

    def batch_delete_rows(self, ranges: list[RowRange]) -> None:
        if not ranges:
            return
        spreadsheet = self._require_spreadsheet()
        body = build_delete_dimension_requests(self.get_table_id(), ranges)
        self._call(f"batch_update({self._sheet_name})", lambda: spreadsheet.batch_update(body))

    def get_table_id(self) -> int:
        if self._table_id is not None:
            return self._table_id
        spreadsheet = self._require_spreadsheet()
        worksheet = self._call(f"worksheet({self._sheet_name})", lambda: spreadsheet.worksheet(self._sheet_name))
        self._table_id = int(worksheet.id)
        return self._table_id

    def _require_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            raise RuntimeError("Spreadsheet no inicializado. Llama a open_spreadsheet primero.")
        return self._spreadsheet

    def _call(self, operation_name: str, operation: Callable[[], T]) -> T:
        metrics.metrics_registry.increment("sheets_api_calls")
        metrics.metrics_registry.increment(f"sheets_api.{operation_name.partition('(')[0]}")
        try:
            return operation()
        except (gspread.exceptions.GSpreadException, DefaultCredentialsError) as exc:
            mapped_error = map_gspread_exception(exc)
            if isinstance(mapped_error, RemotePermissionError):
                self._log_permission_error(
                    mapped_error,
                    spreadsheet_id=getattr(self._spreadsheet, "id", None),
                    worksheet_name=extract_worksheet_from_operation(operation_name),
                )
            if mapped_error is exc:
                raise
            raise mapped_error from exc

    @staticmethod
    def _log_permission_error(
        error: RemotePermissionError,
        *,
        spreadsheet_id: str | None = None,
        worksheet_name: str | None = None,
    ) -> None:
        log_operational_error(
            "Sync fallido: permisos insuficientes en Google Sheets",
            exc=error,
            extra={
                "correlation_id": get_correlation_id(),
                "operation": "sheets_permission_check",
                "spreadsheet_id": spreadsheet_id,
                "worksheet": worksheet_name,
            },
            logger=logger,
        )

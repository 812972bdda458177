from __future__ import annotations

from typing import Any

from i18n_sync.domain.ports import RangeUpdate, RowRange


def quote_sheet_name(sheet_name: str) -> str:
    return "'" + sheet_name.replace("'", "''") + "'"


def qualify_range(sheet_name: str, range_a1: str | None = None) -> str:
    quoted = quote_sheet_name(sheet_name)
    if not range_a1:
        return quoted
    return f"{quoted}!{range_a1}"


def value_input_option(raw: bool) -> str:
    return "RAW" if raw else "USER_ENTERED"


def normalize_values(values: Any) -> list[list[str]]:
    if not isinstance(values, list):
        return []
    return [
        ["" if cell is None else str(cell) for cell in row] if isinstance(row, list) else []
        for row in values
    ]


def extract_values(payload: Any) -> list[list[str]]:
    if isinstance(payload, dict):
        return normalize_values(payload.get("values", []))
    return normalize_values(payload)


def build_values_batch_body(sheet_name: str, data: list[RangeUpdate], raw: bool) -> dict[str, Any]:
    return {
        "valueInputOption": value_input_option(raw),
        "data": [{"range": qualify_range(sheet_name, item["range"]), "values": item["values"]} for item in data],
    }


def build_delete_dimension_requests(sheet_id: int, ranges: list[RowRange]) -> dict[str, Any]:
    # Se respeta el orden recibido: quien llama ya los ordena de mayor a menor índice.
    return {
        "requests": [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_range["startIndex"],
                        "endIndex": row_range["endIndex"],
                    }
                }
            }
            for row_range in ranges
        ]
    }


def extract_worksheet_from_operation(operation_name: str) -> str | None:
    start = operation_name.find("(")
    end = operation_name.rfind(")")
    if start < 0 or end <= start:
        return None
    worksheet_name = operation_name[start + 1 : end].strip()
    return worksheet_name or None

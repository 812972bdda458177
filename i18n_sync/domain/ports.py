from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, TypedDict

from i18n_sync.domain.models import SyncConfig, TranslationRecord


class RangeUpdate(TypedDict):
    range: str
    values: list[list[Any]]


class RowRange(TypedDict):
    startIndex: int
    endIndex: int


class RemoteTablePort(Protocol):
    """Operaciones mínimas sobre la tabla remota; los rangos A1 no llevan nombre de hoja."""

    def get_rows(self, range_a1: str | None = None) -> list[list[str]]:
        ...

    def append_rows(self, rows: list[list[Any]], *, raw: bool = True) -> None:
        ...

    def update_rows(self, data: list[RangeUpdate], *, raw: bool = True) -> None:
        ...

    def batch_delete_rows(self, ranges: list[RowRange]) -> None:
        ...

    def get_table_id(self) -> int:
        ...


class SyncConfigStorePort(Protocol):
    def load(self) -> SyncConfig | None:
        ...

    def save(self, config: SyncConfig) -> SyncConfig:
        ...


class TranslationRecordStorePort(Protocol):
    def load(self, path: Path) -> TranslationRecord:
        ...

    def save(self, path: Path, record: TranslationRecord) -> None:
        ...

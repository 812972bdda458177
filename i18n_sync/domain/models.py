from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


TranslationValue = Union[str, int]
TranslationEntry = dict[str, TranslationValue]
ModuleTranslations = dict[str, TranslationEntry]
TranslationRecord = dict[str, ModuleTranslations]

IDENTITY_HEADER = "key"
MARK_FIELD = "mark"
ENGLISH = "en"


@dataclass(frozen=True)
class CanonicalRow:
    identity: str
    values: tuple[str, ...]


@dataclass(frozen=True)
class ModifiedRow:
    identity: str
    values: tuple[str, ...]


@dataclass(frozen=True)
class ChangeSet:
    added: tuple[CanonicalRow, ...] = ()
    modified: tuple[ModifiedRow, ...] = ()
    deleted: tuple[str, ...] = ()
    # Identidades repetidas en la hoja cuyas copias sobrantes hay que borrar.
    duplicated: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted or self.duplicated)

    @property
    def locked_identities(self) -> tuple[str, ...]:
        identities = [row.identity for row in self.modified] + list(self.deleted) + list(self.duplicated)
        return tuple(dict.fromkeys(identities))

    def summary(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "modified": len(self.modified),
            "deleted": len(self.deleted),
            "duplicated": len(self.duplicated),
        }


@dataclass(frozen=True)
class LockState:
    owner: str
    acquired_at: datetime


@dataclass(frozen=True)
class SheetRow:
    row_index: int
    identity: str
    texts: dict[str, str]
    mark: int = 0
    lock: LockState | None = None


@dataclass(frozen=True)
class RemoteSnapshot:
    header: tuple[str, ...] = ()
    rows: tuple[SheetRow, ...] = ()
    total_rows: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.header

    def rows_by_identity(self) -> dict[str, tuple[SheetRow, ...]]:
        grouped: dict[str, list[SheetRow]] = {}
        for row in self.rows:
            grouped.setdefault(row.identity, []).append(row)
        return {identity: tuple(rows) for identity, rows in grouped.items()}

    def index_by_identity(self) -> dict[str, SheetRow]:
        """Primera fila de cada identidad; las copias posteriores se tratan como sobrantes."""
        return {identity: rows[0] for identity, rows in self.rows_by_identity().items()}

    def duplicate_identities(self) -> tuple[str, ...]:
        return tuple(sorted(identity for identity, rows in self.rows_by_identity().items() if len(rows) > 1))


@dataclass(frozen=True)
class LockTicket:
    lock_id: str
    locked_row_indexes: frozenset[int]
    acquired_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.locked_row_indexes


@dataclass(frozen=True)
class ApplyReport:
    appended: int = 0
    updated: int = 0
    deleted: int = 0
    write_calls: int = 0


class SyncState(str, Enum):
    IDLE = "IDLE"
    FETCH_REMOTE = "FETCH_REMOTE"
    COMPUTE_CHANGESET = "COMPUTE_CHANGESET"
    VALIDATE_VERSION = "VALIDATE_VERSION"
    ACQUIRE_LOCKS = "ACQUIRE_LOCKS"
    APPLY_CHANGES = "APPLY_CHANGES"
    RELEASE_LOCKS = "RELEASE_LOCKS"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SyncResult:
    state: SyncState
    change_set: ChangeSet
    data_version: str | None = None
    lock_ticket: LockTicket | None = None
    apply_report: ApplyReport = field(default_factory=ApplyReport)
    transitions: tuple[SyncState, ...] = ()
    restarts: int = 0

    @property
    def wrote_remote(self) -> bool:
        return self.apply_report.write_calls > 0


@dataclass(frozen=True)
class SyncConfig:
    spreadsheet_id: str
    sheet_name: str
    credentials_path: str
    languages: tuple[str, ...]
    max_attempts: int = 3
    protect_formatting: bool = True
    rate_limit_backoff_seconds: float = 2.0
    unknown_backoff_seconds: float = 1.0
    lock_ttl_seconds: float | None = None
    restart_on_conflict: int = 0
    revalidate_before_commit: bool = False

    @property
    def header(self) -> tuple[str, ...]:
        return (IDENTITY_HEADER, *self.languages, MARK_FIELD)

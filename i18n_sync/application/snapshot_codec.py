from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from i18n_sync.application.canonical import normalize_mark
from i18n_sync.domain.identity import parse_identity
from i18n_sync.domain.models import (
    ENGLISH,
    IDENTITY_HEADER,
    MARK_FIELD,
    LockState,
    RemoteSnapshot,
    SheetRow,
    TranslationRecord,
)

logger = logging.getLogger(__name__)

LOCK_SENTINEL_PREFIX = "LOCKED"
_LOCK_SEPARATOR = "|"


def build_header(languages: Sequence[str]) -> list[str]:
    return [IDENTITY_HEADER, *languages, MARK_FIELD]


def column_letter(index: int) -> str:
    """Convierte un índice de columna 0-based en letras A1 (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError("index no puede ser negativo")
    letters = ""
    while index >= 0:
        letters = chr(65 + index % 26) + letters
        index = index // 26 - 1
    return letters


def row_range_a1(row_index: int, column_count: int) -> str:
    row_number = row_index + 1
    return f"A{row_number}:{column_letter(column_count - 1)}{row_number}"


def cell_a1(row_index: int, column_index: int) -> str:
    return f"{column_letter(column_index)}{row_index + 1}"


def lock_column_index(languages: Sequence[str]) -> int:
    """Columna reservada de bloqueo: la primera tras `mark` en la cabecera exacta."""
    return len(languages) + 2


def read_range_a1(languages: Sequence[str]) -> str:
    # Sin límite de filas: la API solo devuelve hasta la última fila con datos.
    return f"A1:{column_letter(lock_column_index(languages))}"


def header_matches(header: Sequence[str], languages: Sequence[str]) -> bool:
    return tuple(header) == tuple(build_header(languages))


def encode_lock(lock: LockState) -> str:
    return _LOCK_SEPARATOR.join((LOCK_SENTINEL_PREFIX, lock.owner, lock.acquired_at.isoformat()))


def decode_lock(value: Any) -> LockState | None:
    text = "" if value is None else str(value).strip()
    if not text.startswith(LOCK_SENTINEL_PREFIX + _LOCK_SEPARATOR):
        return None
    parts = text.split(_LOCK_SEPARATOR, 2)
    owner = parts[1] if len(parts) > 1 else ""
    try:
        acquired_at = datetime.fromisoformat(parts[2]) if len(parts) > 2 else None
    except ValueError:
        acquired_at = None
    if acquired_at is None:
        logger.warning("Marca de bloqueo con fecha ilegible: %s", text)
        acquired_at = datetime.min.replace(tzinfo=timezone.utc)
    elif acquired_at.tzinfo is None:
        acquired_at = acquired_at.replace(tzinfo=timezone.utc)
    return LockState(owner=owner, acquired_at=acquired_at)


def _cell(row: Sequence[Any], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value)


def decode_snapshot(raw_rows: Sequence[Sequence[Any]], languages: Sequence[str]) -> RemoteSnapshot:
    if not raw_rows or not any(str(cell).strip() for cell in raw_rows[0]):
        return RemoteSnapshot(total_rows=len(raw_rows))

    header = tuple(str(cell).strip() for cell in raw_rows[0])
    while header and not header[-1]:
        header = header[:-1]
    language_indexes = {language: header.index(language) for language in languages if language in header}
    missing_languages = [language for language in languages if language not in language_indexes]
    if missing_languages:
        logger.warning("La cabecera remota no contiene los idiomas: %s", ", ".join(missing_languages))
    mark_index = header.index(MARK_FIELD) if MARK_FIELD in header else None
    lock_index = lock_column_index(languages)

    rows: list[SheetRow] = []
    for row_index, raw_row in enumerate(raw_rows[1:], start=1):
        identity = _cell(raw_row, 0).strip()
        if not identity:
            continue
        texts = {
            language: _cell(raw_row, column)
            for language, column in language_indexes.items()
            if _cell(raw_row, column) != ""
        }
        rows.append(
            SheetRow(
                row_index=row_index,
                identity=identity,
                texts=texts,
                mark=normalize_mark(_cell(raw_row, mark_index)),
                lock=decode_lock(_cell(raw_row, lock_index)),
            )
        )
    return RemoteSnapshot(header=header, rows=tuple(rows), total_rows=len(raw_rows))


def snapshot_to_record(snapshot: RemoteSnapshot) -> TranslationRecord:
    record: TranslationRecord = {}
    for row in snapshot.index_by_identity().values():
        parts = parse_identity(row.identity)
        if parts is None:
            logger.warning("No se puede interpretar la identidad de la fila %s: %s", row.row_index, row.identity)
            continue
        translations: dict[str, str | int] = dict(row.texts)
        english = translations.get(ENGLISH)
        if english is not None and english != parts.text:
            # La celda de identidad manda; sin "en" la identidad se recalcula igual y el diff reescribe la celda.
            logger.warning("Texto inglés editado en la hoja para %s; se restaurará desde el registro local.", row.identity)
            translations.pop(ENGLISH)
        translations[MARK_FIELD] = row.mark
        record.setdefault(parts.module_path, {})[parts.text] = translations
    return record


def encode_row(values: Sequence[str]) -> list[str]:
    return [str(value) for value in values]

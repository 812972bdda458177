from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Iterable, Mapping, Sequence

from i18n_sync.domain.identity import format_identity
from i18n_sync.domain.models import ENGLISH, MARK_FIELD, CanonicalRow, TranslationRecord

logger = logging.getLogger(__name__)


def normalize_mark(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def build_identity(module_path: str, key: str, translations: Mapping[str, Any]) -> str:
    """La identidad externa sale del texto inglés; la clave interna solo se usa si no hay inglés."""
    english = translations.get(ENGLISH)
    return format_identity(module_path, key if english is None else str(english))


def build_values(identity: str, translations: Mapping[str, Any], languages: Sequence[str]) -> tuple[str, ...]:
    texts = [_cell_text(translations.get(language)) for language in languages]
    return (identity, *texts, str(normalize_mark(translations.get(MARK_FIELD))))


def to_canonical_rows(record: TranslationRecord, languages: Sequence[str]) -> list[CanonicalRow]:
    rows: dict[str, CanonicalRow] = {}
    for module_path in sorted(record):
        module_keys = record[module_path] or {}
        for key in sorted(module_keys):
            translations = module_keys[key] or {}
            identity = build_identity(module_path, key, translations)
            if identity in rows:
                logger.warning("Identidad repetida en el registro (%s, clave %s); prevalece la última.", identity, key)
            rows[identity] = CanonicalRow(identity=identity, values=build_values(identity, translations, languages))
    return list(rows.values())


def rows_by_identity(rows: Iterable[CanonicalRow]) -> dict[str, CanonicalRow]:
    return {row.identity: row for row in rows}


def serialize_rows(rows: Iterable[CanonicalRow]) -> str:
    ordered = sorted(rows, key=lambda row: row.identity)
    return json.dumps([list(row.values) for row in ordered], ensure_ascii=False, separators=(",", ":"))


def calculate_data_version(record: TranslationRecord, languages: Sequence[str]) -> str:
    serialized = serialize_rows(to_canonical_rows(record, languages))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

from __future__ import annotations

import copy
import logging
from typing import Iterable

from i18n_sync.application.canonical import build_identity
from i18n_sync.domain.identity import format_identity, is_identity
from i18n_sync.domain.models import TranslationRecord

logger = logging.getLogger(__name__)


def merge_records(local: TranslationRecord, remote: TranslationRecord) -> TranslationRecord:
    """Fusión con prioridad remota.

    Las entradas se emparejan por identidad, no por clave interna:
    - identidad en local y en remoto: se conservan las traducciones remotas
    - identidad solo en local: se añade con su clave local
    - identidad solo en remoto: se conserva
    """
    merged = copy.deepcopy(remote)
    remote_identities = {
        build_identity(module_path, key, translations)
        for module_path, module_keys in remote.items()
        for key, translations in module_keys.items()
    }
    for module_path, module_keys in local.items():
        for key, translations in module_keys.items():
            if build_identity(module_path, key, translations) in remote_identities:
                continue
            merged.setdefault(module_path, {})[key] = copy.deepcopy(translations)
    return merged


def filter_deleted_keys(record: TranslationRecord, deleted_keys: Iterable[str]) -> TranslationRecord:
    """Quita del registro las claves borradas por el usuario.

    Acepta identidades `[modulo][clave]` o claves sueltas. Las claves sueltas
    solo se aplican cuando no llega ninguna identidad, para no borrar una clave
    homónima de otro módulo.
    """
    formatted: set[str] = set()
    raw: set[str] = set()
    for deleted_key in deleted_keys:
        if is_identity(deleted_key):
            formatted.add(deleted_key)
        else:
            raw.add(deleted_key)
    if not formatted and not raw:
        return record

    filtered: TranslationRecord = {}
    for module_path, module_keys in record.items():
        for key, translations in module_keys.items():
            identity = build_identity(module_path, key, translations)
            if formatted:
                should_delete = identity in formatted or format_identity(module_path, key) in formatted
            else:
                should_delete = key in raw
            if should_delete:
                logger.debug("Filtrada clave borrada por el usuario: %s", identity)
                continue
            filtered.setdefault(module_path, {})[key] = translations
    return filtered

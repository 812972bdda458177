from __future__ import annotations

import json
import logging
from pathlib import Path

from i18n_sync.domain.models import TranslationRecord
from i18n_sync.domain.sync_errors import SyncConfigError

logger = logging.getLogger(__name__)


class TranslationRecordStore:
    """Lee y escribe el registro de traducciones que produce el escáner de código."""

    def load(self, path: Path) -> TranslationRecord:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise SyncConfigError(f"No existe el registro de traducciones {path}.") from exc
        except json.JSONDecodeError as exc:
            raise SyncConfigError(f"El registro de traducciones {path} no es JSON válido: {exc}") from exc
        if not isinstance(payload, dict) or not all(isinstance(keys, dict) for keys in payload.values()):
            raise SyncConfigError(f"El registro {path} debe ser un objeto modulo -> clave -> idioma -> texto.")
        logger.info("Registro local cargado: %s módulos desde %s", len(payload), path)
        return payload

    def save(self, path: Path, record: TranslationRecord) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record, indent=2, ensure_ascii=False, sort_keys=True) + "\n", encoding="utf-8")
        logger.info("Registro guardado en %s (%s módulos)", path, len(record))

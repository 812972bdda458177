from __future__ import annotations

import logging

from i18n_sync.application.canonical import calculate_data_version
from i18n_sync.application.snapshot_codec import (
    build_header,
    decode_snapshot,
    header_matches,
    read_range_a1,
    snapshot_to_record,
)
from i18n_sync.domain.models import RemoteSnapshot, SyncConfig, TranslationRecord
from i18n_sync.domain.ports import RemoteTablePort
from i18n_sync.domain.sync_errors import SyncConfigError

logger = logging.getLogger(__name__)


class SnapshotReader:
    """Lee siempre la hoja completa en fresco; nunca reutiliza índices de una lectura anterior.

    Solo acepta la cabecera exacta `key, <idiomas>, mark`: la columna siguiente
    es la de bloqueo, y una columna extra quedaría fuera de lo que se lee.
    """

    def __init__(self, remote: RemoteTablePort, config: SyncConfig) -> None:
        self._remote = remote
        self._config = config
        self._read_range = read_range_a1(config.languages)

    @property
    def languages(self) -> tuple[str, ...]:
        return self._config.languages

    def fetch(self) -> RemoteSnapshot:
        raw_rows = self._remote.get_rows(self._read_range)
        snapshot = decode_snapshot(raw_rows, self._config.languages)
        if not snapshot.is_empty and not header_matches(snapshot.header, self._config.languages):
            raise SyncConfigError(
                f"La cabecera de la hoja {list(snapshot.header)} no coincide con la configurada "
                f"{build_header(self._config.languages)}. Revisa el orden de idiomas en la configuración "
                "y elimina las columnas adicionales."
            )
        logger.debug("Snapshot remoto leído: %s filas de datos (%s)", len(snapshot.rows), self._read_range)
        return snapshot

    def fetch_record(self) -> tuple[RemoteSnapshot, TranslationRecord, str]:
        snapshot = self.fetch()
        record = snapshot_to_record(snapshot)
        return snapshot, record, calculate_data_version(record, self._config.languages)

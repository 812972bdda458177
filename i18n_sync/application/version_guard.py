from __future__ import annotations

import logging

from i18n_sync.application.snapshot_reader import SnapshotReader
from i18n_sync.domain.models import RemoteSnapshot
from i18n_sync.domain.sync_errors import VersionConflictError

logger = logging.getLogger(__name__)


class VersionGuard:
    """Control optimista: detecta a posteriori que otro proceso cambió la hoja."""

    def __init__(self, reader: SnapshotReader) -> None:
        self._reader = reader

    def current_version(self) -> tuple[RemoteSnapshot, str]:
        snapshot, _record, version = self._reader.fetch_record()
        return snapshot, version

    def validate_remote_version(self, expected_version: str) -> RemoteSnapshot:
        snapshot, actual_version = self.current_version()
        if actual_version != expected_version:
            logger.warning(
                "Versión remota cambiada durante el ciclo: esperada=%s actual=%s",
                expected_version[:12],
                actual_version[:12],
            )
            raise VersionConflictError(expected_version, actual_version)
        logger.debug("Versión remota validada: %s", actual_version[:12])
        return snapshot

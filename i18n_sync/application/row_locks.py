from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from i18n_sync.application.snapshot_codec import cell_a1, encode_lock, lock_column_index
from i18n_sync.application.snapshot_reader import SnapshotReader
from i18n_sync.domain.models import ChangeSet, LockState, LockTicket, RemoteSnapshot, SheetRow
from i18n_sync.domain.ports import RangeUpdate, RemoteTablePort
from i18n_sync.domain.sync_errors import ROW_LOCKED_PHRASE, ConcurrencyError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_lock_id() -> str:
    return uuid.uuid4().hex


class RowLockCoordinator:
    """Bloqueo pesimista por fila mediante una marca escrita en la columna reservada.

    La hoja no ofrece bloqueos ni esperas, así que una fila marcada por otro
    ticket hace fallar la adquisición de inmediato. Las filas añadidas nunca se
    bloquean: un append no compite con filas existentes.
    """

    def __init__(
        self,
        remote: RemoteTablePort,
        reader: SnapshotReader,
        *,
        clock: Clock = utc_now,
        lock_ttl_seconds: float | None = None,
    ) -> None:
        self._remote = remote
        self._reader = reader
        self._clock = clock
        self._lock_ttl = timedelta(seconds=lock_ttl_seconds) if lock_ttl_seconds else None

    def acquire_row_locks(self, change_set: ChangeSet, lock_id: str | None = None) -> LockTicket:
        """Un reintento con el mismo lock_id reconoce como propias las marcas ya escritas."""
        lock_id = lock_id or new_lock_id()
        acquired_at = self._clock()
        identities = change_set.locked_identities
        if not identities:
            return LockTicket(lock_id=lock_id, locked_row_indexes=frozenset(), acquired_at=acquired_at)

        snapshot = self._reader.fetch()
        rows = self._resolve_rows(snapshot, identities, lock_id)
        lock_column = lock_column_index(self._reader.languages)
        sentinel = encode_lock(LockState(owner=lock_id, acquired_at=acquired_at))
        self._remote.update_rows(
            [{"range": cell_a1(row.row_index, lock_column), "values": [[sentinel]]} for row in rows],
            raw=True,
        )
        ticket = LockTicket(
            lock_id=lock_id,
            locked_row_indexes=frozenset(row.row_index for row in rows),
            acquired_at=acquired_at,
        )
        self._verify_ownership(ticket)
        logger.info("Bloqueadas %s filas (lock=%s)", len(ticket.locked_row_indexes), lock_id)
        return ticket

    def release_row_locks(self, ticket: LockTicket) -> set[int]:
        """Borra solo las marcas de este ticket; las filas ya eliminadas simplemente no aparecen."""
        if ticket.is_empty:
            return set()
        return self.clear_locks(ticket.lock_id)

    def clear_locks(self, lock_id: str) -> set[int]:
        snapshot = self._reader.fetch()
        owned = self._owned_rows(snapshot, lock_id)
        if owned:
            lock_column = lock_column_index(self._reader.languages)
            clear: list[RangeUpdate] = [
                {"range": cell_a1(row.row_index, lock_column), "values": [[""]]} for row in owned
            ]
            self._remote.update_rows(clear, raw=True)
        released = {row.row_index for row in owned}
        logger.info("Liberadas %s filas (lock=%s)", len(released), lock_id)
        return released

    def _resolve_rows(self, snapshot: RemoteSnapshot, identities: tuple[str, ...], lock_id: str) -> list[SheetRow]:
        copies = snapshot.rows_by_identity()
        rows: list[SheetRow] = []
        for identity in identities:
            if identity not in copies:
                raise ConcurrencyError(
                    f"La fila {identity} ya no existe en la hoja: otro proceso la ha modificado.",
                    identity=identity,
                )
            # Se bloquean también las copias repetidas: el ciclo puede borrarlas.
            for row in copies[identity]:
                self._check_lockable(row, lock_id)
                rows.append(row)
        return rows

    def _check_lockable(self, row: SheetRow, lock_id: str) -> None:
        if row.lock is None or row.lock.owner == lock_id:
            return
        if not self._is_stale(row.lock):
            raise ConcurrencyError(
                f"Fila ya bloqueada por otro proceso: {row.identity} (lock={row.lock.owner}).",
                identity=row.identity,
                owner=row.lock.owner,
            )
        logger.warning(
            "Marca de bloqueo caducada en %s (lock=%s desde %s); se reemplaza.",
            row.identity,
            row.lock.owner,
            row.lock.acquired_at.isoformat(),
        )

    def _verify_ownership(self, ticket: LockTicket) -> None:
        # Dos escritores pueden marcar la misma fila a la vez; gana la última escritura.
        snapshot = self._reader.fetch()
        owned = {row.row_index for row in self._owned_rows(snapshot, ticket.lock_id)}
        lost = ticket.locked_row_indexes - owned
        if not lost:
            return
        self.release_row_locks(ticket)
        raise ConcurrencyError(
            f"{ROW_LOCKED_PHRASE.capitalize()} por otro proceso durante la adquisición (filas {sorted(lost)}).",
        )

    def _is_stale(self, lock: LockState) -> bool:
        if self._lock_ttl is None:
            return False
        return self._clock() - lock.acquired_at > self._lock_ttl

    @staticmethod
    def _owned_rows(snapshot: RemoteSnapshot, lock_id: str) -> list[SheetRow]:
        return [row for row in snapshot.rows if row.lock is not None and row.lock.owner == lock_id]

from __future__ import annotations

import logging

from i18n_sync.application.snapshot_codec import build_header, encode_row, row_range_a1
from i18n_sync.application.snapshot_reader import SnapshotReader
from i18n_sync.domain.models import ApplyReport, ChangeSet, LockTicket, RemoteSnapshot, SheetRow
from i18n_sync.domain.ports import RangeUpdate, RemoteTablePort, RowRange
from i18n_sync.domain.sync_errors import ConcurrencyError

logger = logging.getLogger(__name__)


def build_delete_ranges(row_indexes: list[int]) -> list[RowRange]:
    """Rangos de borrado en orden descendente.

    Todos los índices se calculan contra el snapshot previo al borrado; al
    procesarlos de mayor a menor, borrar una fila nunca desplaza a otra que
    siga pendiente en el mismo lote.
    """
    return [{"startIndex": index, "endIndex": index + 1} for index in sorted(set(row_indexes), reverse=True)]


class ChangeApplier:
    def __init__(self, remote: RemoteTablePort, reader: SnapshotReader, *, protect_formatting: bool = True) -> None:
        self._remote = remote
        self._reader = reader
        self._raw = protect_formatting

    def apply_changes(self, change_set: ChangeSet, ticket: LockTicket | None = None) -> ApplyReport:
        if change_set.is_empty:
            logger.info("Change-set vacío: no se realiza ninguna llamada remota.")
            return ApplyReport()

        # El lector rechaza cabeceras distintas de la configurada antes de escribir nada.
        snapshot = self._reader.fetch()
        copies = snapshot.rows_by_identity()

        # Se comprueba la propiedad de las filas a borrar antes de la primera escritura.
        doomed = self._rows_to_delete(change_set, copies, ticket)

        appended = self._append_added(change_set, snapshot, copies)
        updated = self._update_modified(change_set, copies, ticket)
        deleted = self._delete_rows(doomed)

        report = ApplyReport(
            appended=appended,
            updated=updated,
            deleted=deleted,
            write_calls=sum(1 for count in (appended, updated, deleted) if count),
        )
        logger.info(
            "Cambios aplicados en la hoja: añadidas=%s modificadas=%s eliminadas=%s",
            report.appended,
            report.updated,
            report.deleted,
        )
        return report

    def _append_added(
        self,
        change_set: ChangeSet,
        snapshot: RemoteSnapshot,
        copies: dict[str, tuple[SheetRow, ...]],
    ) -> int:
        # Tras un reintento el append anterior pudo haberse aplicado aunque la respuesta se perdiera.
        pending = [row for row in change_set.added if row.identity not in copies]
        skipped = len(change_set.added) - len(pending)
        if skipped:
            logger.info("Se omiten %s filas nuevas que ya existen en la hoja.", skipped)
        if not pending:
            return 0
        rows = [encode_row(row.values) for row in pending]
        if snapshot.is_empty:
            rows.insert(0, build_header(self._reader.languages))
        self._remote.append_rows(rows, raw=self._raw)
        return len(pending)

    def _update_modified(
        self,
        change_set: ChangeSet,
        copies: dict[str, tuple[SheetRow, ...]],
        ticket: LockTicket | None,
    ) -> int:
        if not change_set.modified:
            return 0
        column_count = len(build_header(self._reader.languages))
        data: list[RangeUpdate] = []
        for modified in change_set.modified:
            rows = copies.get(modified.identity)
            if not rows:
                raise ConcurrencyError(
                    f"La fila {modified.identity} ya no existe en la hoja: otro proceso la ha eliminado.",
                    identity=modified.identity,
                )
            row = rows[0]
            self._check_owned(row, ticket)
            data.append({"range": row_range_a1(row.row_index, column_count), "values": [encode_row(modified.values)]})
        self._remote.update_rows(data, raw=self._raw)
        return len(data)

    def _rows_to_delete(
        self,
        change_set: ChangeSet,
        copies: dict[str, tuple[SheetRow, ...]],
        ticket: LockTicket | None,
    ) -> list[SheetRow]:
        doomed: list[SheetRow] = []
        for identity in change_set.deleted:
            rows = copies.get(identity)
            if not rows:
                logger.info("La fila %s ya no está en la hoja; nada que borrar.", identity)
                continue
            doomed.extend(rows)
        # Las copias sobrantes se borran; la primera fila sigue siendo la de la identidad.
        for identity in (*(row.identity for row in change_set.modified), *change_set.duplicated):
            doomed.extend(copies.get(identity, ())[1:])
        for row in doomed:
            self._check_owned(row, ticket)
        return doomed

    def _delete_rows(self, doomed: list[SheetRow]) -> int:
        row_indexes = sorted({row.row_index for row in doomed})
        if not row_indexes:
            return 0
        self._remote.batch_delete_rows(build_delete_ranges(row_indexes))
        return len(row_indexes)

    @staticmethod
    def _check_owned(row: SheetRow, ticket: LockTicket | None) -> None:
        if ticket is None:
            return
        if row.lock is None or row.lock.owner != ticket.lock_id:
            owner = row.lock.owner if row.lock else None
            raise ConcurrencyError(
                f"Fila ya bloqueada o desbloqueada por otro proceso: {row.identity} (lock={owner}).",
                identity=row.identity,
                owner=owner,
            )

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Sequence

from i18n_sync.application.canonical import rows_by_identity, to_canonical_rows
from i18n_sync.domain.models import ChangeSet, ModifiedRow, RemoteSnapshot, TranslationRecord

logger = logging.getLogger(__name__)


def calculate_change_set(
    remote_record: TranslationRecord,
    local_record: TranslationRecord,
    languages: Sequence[str],
) -> ChangeSet:
    remote_rows = rows_by_identity(to_canonical_rows(remote_record, languages))
    local_rows = rows_by_identity(to_canonical_rows(local_record, languages))

    added = tuple(local_rows[identity] for identity in sorted(local_rows.keys() - remote_rows.keys()))
    deleted = tuple(sorted(remote_rows.keys() - local_rows.keys()))
    modified = tuple(
        ModifiedRow(identity=identity, values=local_rows[identity].values)
        for identity in sorted(local_rows.keys() & remote_rows.keys())
        if local_rows[identity].values != remote_rows[identity].values
    )

    change_set = ChangeSet(added=added, modified=modified, deleted=deleted)
    logger.debug(
        "Change-set calculado: %s (remoto=%s filas, local=%s filas)",
        change_set.summary(),
        len(remote_rows),
        len(local_rows),
    )
    return change_set


def is_change_set_empty(change_set: ChangeSet) -> bool:
    return change_set.is_empty


def with_remote_duplicates(change_set: ChangeSet, snapshot: RemoteSnapshot) -> ChangeSet:
    """Añade las identidades repetidas en la hoja para que el ciclo borre sus copias sobrantes.

    Las identidades ya marcadas para borrar no se repiten: su borrado alcanza a todas las copias.
    """
    duplicated = tuple(identity for identity in snapshot.duplicate_identities() if identity not in change_set.deleted)
    if not duplicated:
        return change_set
    logger.warning("Identidades duplicadas en la hoja remota; se conservará la primera fila: %s", ", ".join(duplicated))
    return replace(change_set, duplicated=duplicated)

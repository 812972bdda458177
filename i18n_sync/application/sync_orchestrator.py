from __future__ import annotations

import logging
from typing import Iterable

from i18n_sync.application.change_applier import ChangeApplier
from i18n_sync.application.change_set import calculate_change_set, is_change_set_empty, with_remote_duplicates
from i18n_sync.application.error_classifier import NON_RETRYABLE_CATEGORIES, RetryPolicy, categorize_error
from i18n_sync.application.record_merge import filter_deleted_keys
from i18n_sync.application.row_locks import Clock, RowLockCoordinator, new_lock_id, utc_now
from i18n_sync.application.snapshot_reader import SnapshotReader
from i18n_sync.application.version_guard import VersionGuard
from i18n_sync.core import metrics
from i18n_sync.core.metrics import measure_time
from i18n_sync.core.observability import OperationContext, log_event
from i18n_sync.core.operational_logging import log_operational_error
from i18n_sync.domain.models import (
    ApplyReport,
    ChangeSet,
    LockTicket,
    SyncConfig,
    SyncResult,
    SyncState,
    TranslationRecord,
)
from i18n_sync.domain.ports import RemoteTablePort

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Máquina de estados de un ciclo de push incremental contra la hoja remota.

    IDLE -> FETCH_REMOTE -> COMPUTE_CHANGESET -> (vacío -> DONE)
         -> VALIDATE_VERSION -> ACQUIRE_LOCKS -> APPLY_CHANGES -> RELEASE_LOCKS -> DONE

    Cualquier estado puede acabar en FAILED. Si falla la adquisición de bloqueos
    nunca se llega a aplicar nada; si falla la aplicación, los bloqueos se
    liberan antes de propagar el error.
    """

    def __init__(
        self,
        remote: RemoteTablePort,
        config: SyncConfig,
        *,
        retry_policy: RetryPolicy | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config
        self._reader = SnapshotReader(remote, config)
        self._guard = VersionGuard(self._reader)
        self._locks = RowLockCoordinator(remote, self._reader, clock=clock, lock_ttl_seconds=config.lock_ttl_seconds)
        self._applier = ChangeApplier(remote, self._reader, protect_formatting=config.protect_formatting)
        self._retry = retry_policy or RetryPolicy(
            max_attempts=config.max_attempts,
            rate_limit_backoff_seconds=config.rate_limit_backoff_seconds,
            unknown_backoff_seconds=config.unknown_backoff_seconds,
        )
        self._transitions: list[SyncState] = []
        self.state = SyncState.IDLE

    @property
    def transitions(self) -> tuple[SyncState, ...]:
        return tuple(self._transitions)

    @measure_time("sync.duration_ms")
    def sync(self, local_record: TranslationRecord, deleted_keys: Iterable[str] = ()) -> SyncResult:
        local = filter_deleted_keys(local_record, deleted_keys)
        restarts = 0
        with OperationContext("sync_push") as operation:
            while True:
                try:
                    result = self._run_cycle(local, restarts)
                except Exception as exc:
                    category = categorize_error(exc)
                    if category in NON_RETRYABLE_CATEGORIES and restarts < self._config.restart_on_conflict:
                        restarts += 1
                        metrics.metrics_registry.increment("sync.restarts")
                        logger.warning(
                            "Ciclo de sync reiniciado tras %s (%s/%s): %s",
                            category.value,
                            restarts,
                            self._config.restart_on_conflict,
                            exc,
                        )
                        continue
                    metrics.metrics_registry.increment(f"sync.failed.{category.value.lower()}")
                    raise
                metrics.metrics_registry.increment("sync.completed")
                log_event(
                    logger,
                    "sync_finished",
                    {
                        **result.change_set.summary(),
                        "state": result.state.value,
                        "write_calls": result.apply_report.write_calls,
                        "restarts": result.restarts,
                    },
                    operation.correlation_id,
                )
                return result

    def pull(self) -> TranslationRecord:
        with OperationContext("sync_pull"):
            _snapshot, record, version = self._retry.run("fetch_remote", self._reader.fetch_record)
            logger.info("Registro remoto leído: %s módulos (versión %s)", len(record), version[:12])
            return record

    def status(self, local_record: TranslationRecord, deleted_keys: Iterable[str] = ()) -> ChangeSet:
        with OperationContext("sync_status"):
            snapshot, remote_record, _version = self._retry.run("fetch_remote", self._reader.fetch_record)
            local = filter_deleted_keys(local_record, deleted_keys)
            return with_remote_duplicates(calculate_change_set(remote_record, local, self._config.languages), snapshot)

    def _run_cycle(self, local: TranslationRecord, restarts: int) -> SyncResult:
        self._transitions = []
        self._enter(SyncState.IDLE)
        try:
            self._enter(SyncState.FETCH_REMOTE)
            snapshot, remote_record, version = self._retry.run("fetch_remote", self._reader.fetch_record)

            self._enter(SyncState.COMPUTE_CHANGESET)
            change_set = with_remote_duplicates(
                calculate_change_set(remote_record, local, self._config.languages), snapshot
            )
            if is_change_set_empty(change_set):
                logger.info("Sin cambios respecto a la hoja remota; no se escribe nada.")
                self._enter(SyncState.DONE)
                return self._result(change_set, version, None, ApplyReport(), restarts)
            logger.info("Cambios detectados: %s", change_set.summary())

            self._enter(SyncState.VALIDATE_VERSION)
            self._retry.run("validate_version", lambda: self._guard.validate_remote_version(version))

            self._enter(SyncState.ACQUIRE_LOCKS)
            ticket = self._acquire(change_set)

            report = self._apply_and_release(change_set, version, ticket)
            self._enter(SyncState.DONE)
            return self._result(change_set, version, ticket, report, restarts)
        except BaseException:
            self._enter(SyncState.FAILED)
            raise

    def _acquire(self, change_set: ChangeSet) -> LockTicket:
        lock_id = new_lock_id()
        try:
            return self._retry.run("acquire_locks", lambda: self._locks.acquire_row_locks(change_set, lock_id))
        except BaseException:
            # Una escritura de marcas pudo aplicarse aunque la llamada fallara.
            self._cleanup_orphan_locks(lock_id)
            raise

    def _apply_and_release(self, change_set: ChangeSet, version: str, ticket: LockTicket) -> ApplyReport:
        apply_error: BaseException | None = None
        try:
            self._enter(SyncState.APPLY_CHANGES)
            if self._config.revalidate_before_commit:
                self._retry.run("revalidate_version", lambda: self._guard.validate_remote_version(version))
            return self._retry.run("apply_changes", lambda: self._applier.apply_changes(change_set, ticket))
        except BaseException as exc:
            apply_error = exc
            raise
        finally:
            self._enter(SyncState.RELEASE_LOCKS)
            self._release(ticket, surface=apply_error is None)

    def _release(self, ticket: LockTicket, *, surface: bool) -> None:
        try:
            self._retry.run("release_locks", lambda: self._locks.release_row_locks(ticket))
        except Exception as exc:
            log_operational_error(
                "No se pudieron liberar los bloqueos de fila",
                exc=exc,
                extra={"lock_id": ticket.lock_id, "rows": sorted(ticket.locked_row_indexes)},
                logger=logger,
            )
            if surface:
                raise

    def _cleanup_orphan_locks(self, lock_id: str) -> None:
        try:
            self._locks.clear_locks(lock_id)
        except Exception as exc:
            log_operational_error(
                "No se pudieron limpiar marcas de bloqueo tras un fallo de adquisición",
                exc=exc,
                extra={"lock_id": lock_id},
                logger=logger,
            )

    def _enter(self, state: SyncState) -> None:
        self.state = state
        self._transitions.append(state)
        logger.debug("Estado de sync: %s", state.value)

    def _result(
        self,
        change_set: ChangeSet,
        version: str,
        ticket: LockTicket | None,
        report: ApplyReport,
        restarts: int,
    ) -> SyncResult:
        return SyncResult(
            state=self.state,
            change_set=change_set,
            data_version=version,
            lock_ticket=ticket,
            apply_report=report,
            transitions=tuple(self._transitions),
            restarts=restarts,
        )

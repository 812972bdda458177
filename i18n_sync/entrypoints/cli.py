from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from i18n_sync.application.error_classifier import ErrorCategory, categorize_error, is_fatal_error
from i18n_sync.application.record_merge import merge_records
from i18n_sync.bootstrap.container import build_container
from i18n_sync.bootstrap.logging import configure_logging, install_exception_hook
from i18n_sync.bootstrap.settings import resolve_log_dir
from i18n_sync.core import metrics
from i18n_sync.domain.sync_errors import SyncConfigError

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_CONFLICT = 3
EXIT_FAILURE = 4

logger = logging.getLogger("i18n_sync.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="i18n-sync", description="Sincroniza el registro de traducciones con Google Sheets")
    parser.add_argument("--config", type=Path, default=None, help="Ruta del config.json de sincronización")
    parser.add_argument("--verbose", action="store_true", help="Muestra también los logs por consola")
    subparsers = parser.add_subparsers(dest="command", required=True)

    push = subparsers.add_parser("push", help="Sube los cambios del registro local a la hoja")
    push.add_argument("--record", type=Path, required=True, help="Registro local (JSON)")
    push.add_argument(
        "--deleted-key",
        action="append",
        default=[],
        dest="deleted_keys",
        help="Clave o identidad [modulo][clave] borrada por el usuario (repetible)",
    )

    pull = subparsers.add_parser("pull", help="Descarga el registro remoto")
    pull.add_argument("--output", type=Path, required=True, help="Destino del registro descargado")
    pull.add_argument(
        "--merge-with",
        type=Path,
        default=None,
        dest="merge_with",
        help="Registro local a fusionar; las traducciones remotas prevalecen",
    )

    status = subparsers.add_parser("status", help="Muestra el change-set sin escribir en la hoja")
    status.add_argument("--record", type=Path, required=True, help="Registro local (JSON)")
    return parser


def _write(payload: dict[str, object]) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")


def _exit_code_for(error: Exception) -> int:
    if isinstance(error, SyncConfigError) or is_fatal_error(error):
        return EXIT_CONFIG
    if categorize_error(error) in (ErrorCategory.VERSION_CONFLICT, ErrorCategory.CONCURRENCY_ERROR):
        return EXIT_CONFLICT
    return EXIT_FAILURE


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    log_dir = resolve_log_dir()
    configure_logging(log_dir, level=logging.DEBUG if args.verbose else logging.INFO, console=args.verbose)
    install_exception_hook(log_dir)

    try:
        container = build_container(args.config)
        orchestrator = container.orchestrator
        if args.command == "push":
            record = container.record_store.load(args.record)
            result = orchestrator.sync(record, deleted_keys=args.deleted_keys)
            _write(
                {
                    "state": result.state.value,
                    **result.change_set.summary(),
                    "write_calls": result.apply_report.write_calls,
                    "version": result.data_version,
                    "sheets_api_calls": metrics.metrics_registry.counters_with_prefix("sheets_api."),
                }
            )
        elif args.command == "pull":
            record = orchestrator.pull()
            if args.merge_with is not None:
                record = merge_records(container.record_store.load(args.merge_with), record)
            container.record_store.save(args.output, record)
            _write({"state": "DONE", "output": str(args.output)})
        else:
            change_set = orchestrator.status(container.record_store.load(args.record))
            _write(
                {
                    **change_set.summary(),
                    "added_identities": [row.identity for row in change_set.added],
                    "modified_identities": [row.identity for row in change_set.modified],
                    "deleted_identities": list(change_set.deleted),
                    "duplicated_identities": list(change_set.duplicated),
                }
            )
    except Exception as exc:
        exit_code = _exit_code_for(exc)
        logger.error("Sync terminado con error (%s): %s", exit_code, exc, exc_info=exit_code == EXIT_FAILURE)
        sys.stderr.write(f"{exc}\n")
        return exit_code
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

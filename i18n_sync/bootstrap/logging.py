from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from i18n_sync.core.observability import get_correlation_id, get_operation_name

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 10
LOG_MAX_BYTES_ENV_VAR = "I18N_SYNC_LOG_MAX_BYTES"
MAIN_LOG_NAME = "seguimiento.log"
OPERATIONAL_ERROR_LOG_NAME = "error_operativo.log"
CRASH_LOG_NAME = "crash.log"


class JsonLinesFormatter(logging.Formatter):
    """Una línea JSON por evento; el correlation id permite reconstruir un ciclo de sync completo."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "modulo": record.module,
            "funcion": record.funcName,
            "mensaje": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        operation = get_operation_name()
        if operation:
            event["operacion"] = operation

        payload_extra = getattr(record, "extra", None)
        if isinstance(payload_extra, dict) and payload_extra:
            event["extra"] = payload_extra

        if record.exc_info:
            event["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(event, ensure_ascii=False, default=str)


class LevelOnlyFilter(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self._level


@dataclass(frozen=True)
class _LogFile:
    name: str
    level: int | None
    only_level: int | None = None


# level=None usa el nivel configurado.
_LOG_FILES = (
    _LogFile(MAIN_LOG_NAME, None),
    _LogFile(OPERATIONAL_ERROR_LOG_NAME, logging.ERROR, only_level=logging.ERROR),
    _LogFile(CRASH_LOG_NAME, logging.CRITICAL),
)


def _resolve_max_bytes(max_bytes: int | None) -> int:
    if max_bytes:
        return max_bytes
    raw_value = os.getenv(LOG_MAX_BYTES_ENV_VAR)
    if raw_value is None:
        return DEFAULT_LOG_MAX_BYTES
    try:
        return int(raw_value)
    except ValueError:
        return DEFAULT_LOG_MAX_BYTES


def _file_handler(log_dir: Path, log_file: _LogFile, *, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = RotatingFileHandler(log_dir / log_file.name, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(level if log_file.level is None else log_file.level)
    handler.setFormatter(JsonLinesFormatter())
    if log_file.only_level is not None:
        handler.addFilter(LevelOnlyFilter(log_file.only_level))
    return handler


def configure_logging(
    log_dir: Path,
    *,
    max_bytes: int | None = None,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    level: int = logging.INFO,
    console: bool = False,
) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    resolved_max_bytes = _resolve_max_bytes(max_bytes)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)

    for log_file in _LOG_FILES:
        root_logger.addHandler(
            _file_handler(log_dir, log_file, level=level, max_bytes=resolved_max_bytes, backup_count=backup_count)
        )
    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root_logger.addHandler(stream_handler)


def write_crash_log(exc_type: type[BaseException], exc: BaseException, tb: Any, log_dir: Path) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.getLogger("i18n_sync.crash").critical(
        "Unhandled exception",
        exc_info=(exc_type, exc, tb),
        extra={"extra": {"python": sys.version, "cwd": str(Path.cwd())}},
    )
    return log_dir / CRASH_LOG_NAME


def install_exception_hook(log_dir: Path) -> None:
    def _handler(exc_type, exc, tb) -> None:
        try:
            write_crash_log(exc_type, exc, tb, log_dir)
        except OSError:
            sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _handler

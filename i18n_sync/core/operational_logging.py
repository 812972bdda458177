from __future__ import annotations

import logging
from typing import Any

from i18n_sync.core.errors import AppError
from i18n_sync.core.observability import get_correlation_id, get_operation_name

operational_logger = logging.getLogger("i18n_sync.operational_error")


def log_operational_error(
    message: str,
    *,
    exc: BaseException,
    extra: dict[str, Any] | None = None,
    logger: logging.Logger | None = None,
) -> None:
    """Error que requiere intervención (permisos, bloqueos sin liberar); acaba en error_operativo.log."""
    details = exc.details if isinstance(exc, AppError) else {}
    metadata = {"error_type": type(exc).__name__, **details, **(extra or {})}
    correlation_id = metadata.get("correlation_id") or get_correlation_id()
    if correlation_id:
        metadata["correlation_id"] = correlation_id
    operation = get_operation_name()
    if operation:
        metadata.setdefault("operation", operation)
    (logger or operational_logger).error(
        message,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"correlation_id": correlation_id, "extra": metadata},
    )

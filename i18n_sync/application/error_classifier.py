from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, TypeVar

from i18n_sync.domain.sync_errors import (
    ROW_LOCKED_PHRASE,
    VERSION_CONFLICT_PHRASE,
    ConcurrencyError,
    RemoteConfigError,
    RemoteRateLimitError,
    SyncConfigError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_VERSION_CONFLICT_TOKENS = (VERSION_CONFLICT_PHRASE, "version conflict")
_ROW_LOCKED_TOKENS = (ROW_LOCKED_PHRASE, "already locked", "row is locked")


class ErrorCategory(str, Enum):
    VERSION_CONFLICT = "VERSION_CONFLICT"
    CONCURRENCY_ERROR = "CONCURRENCY_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    UNKNOWN = "UNKNOWN"


NON_RETRYABLE_CATEGORIES = frozenset({ErrorCategory.VERSION_CONFLICT, ErrorCategory.CONCURRENCY_ERROR})


def extract_status_code(error: Any) -> int | None:
    for candidate in (
        getattr(error, "status_code", None),
        getattr(error, "code", None),
        getattr(getattr(error, "response", None), "status_code", None),
    ):
        # gspread usa code=-1 cuando no puede leer el cuerpo de la respuesta.
        if isinstance(candidate, int) and candidate >= 100:
            return candidate
    if isinstance(error, dict):
        code = error.get("code") or error.get("status_code")
        return code if isinstance(code, int) else None
    return None


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", "")).lower()
    return str(error).lower()


def categorize_error(error: Any) -> ErrorCategory:
    """Clasifica cualquier fallo en la taxonomía que decide la política de reintentos.

    Los fallos de red, DNS y timeouts no tienen categoría propia: caen en UNKNOWN.
    """
    if isinstance(error, VersionConflictError):
        return ErrorCategory.VERSION_CONFLICT
    if isinstance(error, ConcurrencyError):
        return ErrorCategory.CONCURRENCY_ERROR
    text = _error_text(error)
    if any(token in text for token in _VERSION_CONFLICT_TOKENS):
        return ErrorCategory.VERSION_CONFLICT
    if any(token in text for token in _ROW_LOCKED_TOKENS):
        return ErrorCategory.CONCURRENCY_ERROR
    if isinstance(error, RemoteRateLimitError) or extract_status_code(error) == 429:
        return ErrorCategory.RATE_LIMIT
    return ErrorCategory.UNKNOWN


def is_fatal_error(error: BaseException) -> bool:
    """Credenciales, permisos y configuración: reintentar no cambia nada."""
    return isinstance(error, (RemoteConfigError, SyncConfigError))


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    rate_limit_backoff_seconds: float = 2.0
    unknown_backoff_seconds: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts debe ser al menos 1")

    def backoff_seconds(self, category: ErrorCategory, attempt: int) -> float:
        base = self.rate_limit_backoff_seconds if category is ErrorCategory.RATE_LIMIT else self.unknown_backoff_seconds
        return base * (2 ** (attempt - 1))

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        if is_fatal_error(error):
            return False
        if categorize_error(error) in NON_RETRYABLE_CATEGORIES:
            return False
        return attempt < self.max_attempts

    def run(self, operation_name: str, operation: Callable[[], T]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except Exception as exc:
                category = categorize_error(exc)
                if not self.should_retry(exc, attempt):
                    if attempt > 1 and category not in NON_RETRYABLE_CATEGORIES and not is_fatal_error(exc):
                        logger.error(
                            "%s falló tras %s intentos (%s): %s",
                            operation_name,
                            attempt,
                            category.value,
                            exc,
                        )
                    raise
                backoff = self.backoff_seconds(category, attempt)
                logger.warning(
                    "%s falló (%s). intento=%s/%s backoff=%.3fs",
                    operation_name,
                    category.value,
                    attempt,
                    self.max_attempts,
                    backoff,
                )
                self.sleep(backoff)
        raise RuntimeError(f"No se pudo completar {operation_name}.")

from __future__ import annotations

from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
import uuid
from typing import Any

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_OPERATION_NAME: ContextVar[str | None] = ContextVar("operation_name", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def get_operation_name() -> str | None:
    return _OPERATION_NAME.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _CORRELATION_ID.reset(token)


class OperationContext(AbstractContextManager["OperationContext"]):
    """Fija correlation id y nombre de operación (sync_push, sync_pull...) para los logs del ciclo."""

    def __init__(self, operation_name: str, correlation_id: str | None = None) -> None:
        self.operation_name = operation_name
        self.correlation_id = correlation_id or generate_correlation_id()
        self._tokens: tuple[Token[str | None], Token[str | None]] | None = None

    def __enter__(self) -> "OperationContext":
        self._tokens = (set_correlation_id(self.correlation_id), _OPERATION_NAME.set(self.operation_name))
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        if self._tokens is not None:
            correlation_token, operation_token = self._tokens
            _OPERATION_NAME.reset(operation_token)
            reset_correlation_id(correlation_token)
            self._tokens = None
        return None


def log_event(logger: Any, event_name: str, payload: dict[str, Any], correlation_id: str | None = None) -> dict[str, Any]:
    resolved_correlation_id = correlation_id or get_correlation_id()
    event = {
        "event": event_name,
        "operation": get_operation_name(),
        "correlation_id": resolved_correlation_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    logger.info(
        event_name,
        extra={
            "correlation_id": resolved_correlation_id,
            "extra": event,
        },
    )
    return event

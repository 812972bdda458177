from __future__ import annotations

from types import SimpleNamespace

import pytest

from i18n_sync.application.error_classifier import (
    ErrorCategory,
    RetryPolicy,
    categorize_error,
    extract_status_code,
    is_fatal_error,
)
from i18n_sync.domain.sync_errors import (
    ConcurrencyError,
    RemotePermissionError,
    RemoteRateLimitError,
    SyncConfigError,
    VersionConflictError,
)


class _HttpError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.response = SimpleNamespace(status_code=status_code)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (VersionConflictError("a" * 64, "b" * 64), ErrorCategory.VERSION_CONFLICT),
        (ConcurrencyError("boom"), ErrorCategory.CONCURRENCY_ERROR),
        (RuntimeError("Version conflict detected"), ErrorCategory.VERSION_CONFLICT),
        (RuntimeError("Row is locked by another process"), ErrorCategory.CONCURRENCY_ERROR),
        (RuntimeError("Fila ya bloqueada por otro proceso"), ErrorCategory.CONCURRENCY_ERROR),
        (RemoteRateLimitError("cuota"), ErrorCategory.RATE_LIMIT),
        (_HttpError("Too many requests", 429), ErrorCategory.RATE_LIMIT),
        ({"code": 429, "message": "quota"}, ErrorCategory.RATE_LIMIT),
        (TimeoutError("read timed out"), ErrorCategory.UNKNOWN),
        (OSError("Name or service not known"), ErrorCategory.UNKNOWN),
        ("something odd", ErrorCategory.UNKNOWN),
    ],
)
def test_categorize_error(error, expected) -> None:
    assert categorize_error(error) is expected


def test_extract_status_code_ignores_unreadable_response_marker() -> None:
    assert extract_status_code(SimpleNamespace(code=-1)) is None
    assert extract_status_code(SimpleNamespace(code=-1, response=SimpleNamespace(status_code=503))) == 503
    assert extract_status_code({"status_code": 500}) == 500
    assert extract_status_code(ValueError("x")) is None


def test_fatal_errors_are_configuration_problems() -> None:
    assert is_fatal_error(RemotePermissionError("sin permisos"))
    assert is_fatal_error(SyncConfigError("cabecera"))
    assert not is_fatal_error(RemoteRateLimitError("cuota"))
    assert not is_fatal_error(RuntimeError("x"))


def test_backoff_is_exponential_per_category() -> None:
    policy = RetryPolicy(max_attempts=4, rate_limit_backoff_seconds=2.0, unknown_backoff_seconds=0.5)

    assert [policy.backoff_seconds(ErrorCategory.RATE_LIMIT, n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
    assert [policy.backoff_seconds(ErrorCategory.UNKNOWN, n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_rate_limit_is_retried_with_backoff_then_succeeds() -> None:
    sleeps: list[float] = []
    policy = RetryPolicy(max_attempts=3, rate_limit_backoff_seconds=2.0, sleep=sleeps.append)
    outcomes = [RemoteRateLimitError("cuota"), RemoteRateLimitError("cuota"), "ok"]

    def _operation() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert policy.run("fetch_remote", _operation) == "ok"
    assert sleeps == [2.0, 4.0]


def test_unknown_error_gives_up_after_max_attempts() -> None:
    sleeps: list[float] = []
    calls: list[int] = []
    policy = RetryPolicy(max_attempts=3, unknown_backoff_seconds=1.0, sleep=sleeps.append)

    def _operation() -> None:
        calls.append(1)
        raise TimeoutError("read timed out")

    with pytest.raises(TimeoutError):
        policy.run("apply_changes", _operation)

    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.parametrize(
    "error",
    [
        VersionConflictError("a" * 64, "b" * 64),
        ConcurrencyError("Fila ya bloqueada por otro proceso: x"),
        RemotePermissionError("sin permisos"),
    ],
)
def test_conflicts_and_fatal_errors_are_never_retried(error) -> None:
    sleeps: list[float] = []
    calls: list[int] = []
    policy = RetryPolicy(max_attempts=5, sleep=sleeps.append)

    def _operation() -> None:
        calls.append(1)
        raise error

    with pytest.raises(type(error)):
        policy.run("acquire_locks", _operation)

    assert calls == [1]
    assert sleeps == []


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from threading import Lock
from time import perf_counter
from typing import Any, Callable


@dataclass
class _TimingStats:
    count: int = 0
    total_ms: float = 0.0
    last_ms: float = 0.0
    max_ms: float = 0.0

    def add(self, milliseconds: float) -> None:
        self.count += 1
        self.total_ms += milliseconds
        self.last_ms = milliseconds
        self.max_ms = max(self.max_ms, milliseconds)

    def as_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "last": self.last_ms,
            "avg": self.total_ms / self.count if self.count else 0.0,
            "max": self.max_ms,
        }


class MetricsRegistry:
    """Contadores y tiempos de un proceso de sync; los tiempos se agregan al vuelo."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, int] = {}
        self._timings: dict[str, _TimingStats] = {}

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def counters_with_prefix(self, prefix: str) -> dict[str, int]:
        with self._lock:
            return {
                name[len(prefix) :]: value for name, value in sorted(self._counters.items()) if name.startswith(prefix)
            }

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def record_timing(self, name: str, milliseconds: float) -> None:
        with self._lock:
            self._timings.setdefault(name, _TimingStats()).add(milliseconds)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "timings_ms": {name: stats.as_dict() for name, stats in self._timings.items()},
            }


metrics_registry = MetricsRegistry()


def measure_time(metric_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Registra la duración de cada llamada y cuenta en `<metric_name>.errors` las que lanzan."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = perf_counter()
            try:
                return func(*args, **kwargs)
            except BaseException:
                metrics_registry.increment(f"{metric_name}.errors")
                raise
            finally:
                metrics_registry.record_timing(metric_name, (perf_counter() - start) * 1000)

        return wrapper

    return decorator

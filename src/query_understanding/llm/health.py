"""
Per-backend circuit breaker state.

CLOSED -> OPEN after failure_threshold consecutive failures.
OPEN -> CLOSED once cooldown_seconds have passed since opening. The check is
lazy: it happens on the next is_available() or snapshot() call, there is no
timer thread.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from query_understanding.logger import logger


@dataclass
class BackendHealth:
    name: str
    consecutive_failures: int = 0
    circuit_open: bool = False
    opened_at: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "circuit_open": self.circuit_open,
            "consecutive_failures": self.consecutive_failures,
        }


class HealthStore(ABC):
    """Where backend health lives. Swap for a shared store across processes."""

    @abstractmethod
    def is_available(self, backend: str, cooldown_seconds: float) -> bool:
        ...

    @abstractmethod
    def record_success(self, backend: str) -> None:
        ...

    @abstractmethod
    def record_failure(self, backend: str, failure_threshold: int) -> bool:
        """Returns True when this failure opened the circuit."""

    @abstractmethod
    def snapshot(self, backend: str, cooldown_seconds: float) -> BackendHealth:
        ...

    @abstractmethod
    def reset(self, backend: Optional[str] = None) -> None:
        ...


class InMemoryHealthStore(HealthStore):
    """Process-local store guarded by a lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._health: Dict[str, BackendHealth] = {}

    def _get(self, backend: str) -> BackendHealth:
        if backend not in self._health:
            self._health[backend] = BackendHealth(name=backend)
        return self._health[backend]

    def _maybe_close(self, health: BackendHealth, cooldown_seconds: float) -> None:
        if health.circuit_open and self._clock() - health.opened_at >= cooldown_seconds:
            health.circuit_open = False
            health.opened_at = None
            health.consecutive_failures = 0
            logger.info("Circuit breaker closed after cooldown", backend=health.name)

    def is_available(self, backend: str, cooldown_seconds: float) -> bool:
        with self._lock:
            health = self._get(backend)
            self._maybe_close(health, cooldown_seconds)
            return not health.circuit_open

    def record_success(self, backend: str) -> None:
        with self._lock:
            health = self._get(backend)
            health.consecutive_failures = 0
            if health.circuit_open:
                health.circuit_open = False
                health.opened_at = None
                logger.info("Circuit breaker closed after successful request", backend=backend)

    def record_failure(self, backend: str, failure_threshold: int) -> bool:
        with self._lock:
            health = self._get(backend)
            health.consecutive_failures += 1
            if not health.circuit_open and health.consecutive_failures >= failure_threshold:
                health.circuit_open = True
                health.opened_at = self._clock()
                logger.event(
                    "circuit_opened",
                    backend=backend,
                    failures=health.consecutive_failures,
                )
                return True
            return False

    def snapshot(self, backend: str, cooldown_seconds: float) -> BackendHealth:
        with self._lock:
            health = self._get(backend)
            self._maybe_close(health, cooldown_seconds)
            return BackendHealth(
                name=health.name,
                consecutive_failures=health.consecutive_failures,
                circuit_open=health.circuit_open,
                opened_at=health.opened_at,
            )

    def reset(self, backend: Optional[str] = None) -> None:
        with self._lock:
            if backend is None:
                self._health.clear()
            else:
                self._health.pop(backend, None)


_default_store: Optional[HealthStore] = None
_default_store_lock = threading.Lock()


def get_health_store() -> HealthStore:
    """Process-wide default store (lazy)."""
    global _default_store
    with _default_store_lock:
        if _default_store is None:
            _default_store = InMemoryHealthStore()
        return _default_store

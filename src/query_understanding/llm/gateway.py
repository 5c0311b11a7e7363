"""
Generation gateway: one entry point over an ordered chain of backends.

Resilience per call:
- Retry: transient errors are retried with exponential (or fixed) backoff
- Circuit Breaker: a backend that keeps failing is skipped until its cooldown ends
- Fallback: when the primary is exhausted or open, the next backend is tried
- Deadline: no new attempt starts once deadline_seconds have passed

Usage:
    from query_understanding.llm import create_gateway, GenerateRequest, ChatMessage

    gateway = create_gateway()
    response = gateway.generate(GenerateRequest(messages=[ChatMessage("user", "hi")]))
    print(response.backend, response.text)
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from query_understanding.exceptions import (
    AllBackendsFailedError,
    BackendError,
    ConfigurationError,
    FatalBackendError,
    TransientBackendError,
)
from query_understanding.feature_flags import flags
from query_understanding.logger import logger
from .adapters import BackendAdapter, get_adapter_class
from .config import GatewayConfig
from .health import HealthStore, get_health_store
from .types import EmbeddingRequest, EmbeddingResponse, GenerateRequest, GenerateResponse


@dataclass
class GatewayStats:
    """Gateway counters"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    fallback_used: int = 0
    total_retries: int = 0
    circuit_breaker_trips: int = 0
    backends_skipped: int = 0
    total_response_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 100.0
        return (self.successful_requests / self.total_requests) * 100

    @property
    def average_response_time_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.successful_requests


class GenerationGateway:
    """
    Ordered backend chain with retry, circuit breaker and fallback.

    Args:
        adapters: Backends in priority order (primary first)
        config: Retry/breaker/timeout settings
        health_store: Circuit breaker state (process-wide store by default)
        clock: Monotonic clock used for deadlines and latency
    """

    def __init__(
        self,
        adapters: List[BackendAdapter],
        config: Optional[GatewayConfig] = None,
        health_store: Optional[HealthStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not adapters:
            raise ConfigurationError("GenerationGateway needs at least one backend adapter")

        dimensions = {adapter.name: adapter.embedding_dimensions for adapter in adapters}
        if len(set(dimensions.values())) > 1:
            raise ConfigurationError(f"Backends disagree on embedding dimensions: {dimensions}")

        self.adapters = list(adapters)
        self.config = config or GatewayConfig()
        self.health_store = health_store or get_health_store()
        self.embedding_dimensions = next(iter(dimensions.values()))

        self._clock = clock
        self._stats = GatewayStats()
        self._stats_lock = threading.Lock()

    @property
    def backend_names(self) -> List[str]:
        return [adapter.name for adapter in self.adapters]

    @property
    def stats(self) -> GatewayStats:
        return self._stats

    def _count(self, **increments: float) -> None:
        with self._stats_lock:
            for key, value in increments.items():
                setattr(self._stats, key, getattr(self._stats, key) + value)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def generate(self, request: GenerateRequest) -> GenerateResponse:
        """
        Run a chat completion on the first backend that answers.

        Raises:
            AllBackendsFailedError: every backend failed or had its circuit open
        """
        return self._execute("generate", lambda adapter: adapter.generate(request))

    def get_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        """
        Embed text on the first backend that answers.

        Raises:
            AllBackendsFailedError: every backend failed or had its circuit open
        """
        def call(adapter: BackendAdapter) -> EmbeddingResponse:
            response = adapter.get_embedding(request)
            if response.dimensions != self.embedding_dimensions:
                raise FatalBackendError(
                    f"Embedding has {response.dimensions} dimensions, "
                    f"expected {self.embedding_dimensions}",
                    backend=adapter.name,
                )
            return response

        return self._execute("get_embedding", call)

    def get_backend_status(self) -> List[Dict[str, Any]]:
        """Circuit state per backend, in chain order."""
        return [
            self.health_store.snapshot(adapter.name, self.config.cooldown_seconds).to_dict()
            for adapter in self.adapters
        ]

    def get_stats_dict(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = self._stats
            return {
                "total_requests": stats.total_requests,
                "successful_requests": stats.successful_requests,
                "failed_requests": stats.failed_requests,
                "fallback_used": stats.fallback_used,
                "total_retries": stats.total_retries,
                "circuit_breaker_trips": stats.circuit_breaker_trips,
                "backends_skipped": stats.backends_skipped,
                "success_rate": round(stats.success_rate, 1),
                "average_response_time_ms": round(stats.average_response_time_ms, 1),
            }

    def health_check(self) -> Dict[str, bool]:
        """Probe every backend. Never raises."""
        result = {}
        for adapter in self.adapters:
            try:
                result[adapter.name] = bool(adapter.health_check())
            except Exception as e:
                logger.warning("Health check failed", backend=adapter.name, error=str(e))
                result[adapter.name] = False
        return result

    def reset_circuit_breakers(self) -> None:
        for adapter in self.adapters:
            self.health_store.reset(adapter.name)
        logger.info("Circuit breakers reset", backends=self.backend_names)

    # =========================================================================
    # RETRY / FALLBACK
    # =========================================================================

    def backoff_seconds(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """
        Delay before retry number attempt+1.

        exponential: base * 2**attempt, fixed: base. Capped at
        max_retry_delay_ms. A vendor Retry-After hint can raise the delay up
        to the cap.
        """
        base_ms = self.config.base_retry_delay_ms
        cap_ms = self.config.max_retry_delay_ms

        if self.config.retry_backoff_mode == "fixed":
            delay_ms = base_ms
        else:
            delay_ms = base_ms * (2 ** attempt)
        delay_ms = min(delay_ms, cap_ms)

        if retry_after is not None and flags.retry_after_header:
            delay_ms = min(max(delay_ms, retry_after * 1000), cap_ms)

        return delay_ms / 1000

    def _elapsed_ms(self, since: float) -> float:
        return round((self._clock() - since) * 1000, 1)

    def _execute(self, operation: str, call: Callable[[BackendAdapter], Any]) -> Any:
        self._count(total_requests=1)
        start = self._clock()
        deadline = start + self.config.deadline_seconds
        errors: Dict[str, Any] = {}

        for index, adapter in enumerate(self.adapters):
            name = adapter.name

            if not self.health_store.is_available(name, self.config.cooldown_seconds):
                errors[name] = "circuit open"
                self._count(backends_skipped=1)
                logger.warning("Backend skipped, circuit open", backend=name, operation=operation,
                               elapsed_ms=self._elapsed_ms(start))
                continue

            if self._clock() >= deadline:
                errors[name] = "deadline exceeded"
                logger.warning("Backend skipped, deadline exceeded", backend=name, operation=operation,
                               elapsed_ms=self._elapsed_ms(start))
                continue

            response, error, attempts = self._try_backend(adapter, operation, call, start, deadline)
            if response is not None:
                latency_ms = (self._clock() - start) * 1000
                self._count(successful_requests=1, total_response_time_ms=latency_ms)
                if index > 0:
                    self._count(fallback_used=1)
                    logger.info(
                        "Fallback backend answered",
                        backend=name,
                        operation=operation,
                        failed=list(errors),
                        elapsed_ms=self._elapsed_ms(start),
                    )
                if isinstance(response, GenerateResponse):
                    response.backend = name
                    response.attempts = attempts
                    response.latency_ms = latency_ms
                elif isinstance(response, EmbeddingResponse):
                    response.backend = name
                return response

            errors[name] = error
            if index < len(self.adapters) - 1:
                logger.warning(
                    "Falling back to next backend",
                    backend=name,
                    next_backend=self.adapters[index + 1].name,
                    reason=str(error),
                    elapsed_ms=self._elapsed_ms(start),
                )

        self._count(failed_requests=1)
        logger.error(
            "All backends failed",
            operation=operation,
            elapsed_ms=self._elapsed_ms(start),
            errors={name: str(err) for name, err in errors.items()},
        )
        raise AllBackendsFailedError(operation, errors)

    def _try_backend(
        self,
        adapter: BackendAdapter,
        operation: str,
        call: Callable[[BackendAdapter], Any],
        start: float,
        deadline: float,
    ) -> Tuple[Optional[Any], Optional[BackendError], int]:
        """
        Up to max_retries + 1 attempts on one backend.

        Returns:
            (response, None, attempts) on success, (None, last_error, attempts) otherwise
        """
        name = adapter.name
        max_attempts = self.config.max_retries + 1
        last_error: Optional[BackendError] = None
        attempt = 0

        for attempt in range(max_attempts):
            attempt_start = self._clock()
            try:
                response = call(adapter)
                self.health_store.record_success(name)
                logger.debug(
                    "Backend request successful",
                    backend=name,
                    operation=operation,
                    attempt=attempt + 1,
                    elapsed_ms=self._elapsed_ms(attempt_start),
                )
                return response, None, attempt + 1
            except BackendError as e:
                last_error = e
            except Exception as e:
                last_error = FatalBackendError(f"Unexpected {type(e).__name__}: {e}", backend=name)
                logger.exception("Backend adapter raised unexpected error", backend=name)

            if not last_error.transient:
                logger.warning(
                    "Backend request failed, not retrying",
                    backend=name,
                    attempt=attempt + 1,
                    error=str(last_error),
                    elapsed_ms=self._elapsed_ms(start),
                )
                break

            if attempt >= max_attempts - 1:
                break

            delay = self.backoff_seconds(attempt, last_error.retry_after)
            if self._clock() + delay >= deadline:
                last_error = TransientBackendError(
                    f"Deadline exceeded after {attempt + 1} attempts ({last_error.message})",
                    backend=name,
                    status_code=last_error.status_code,
                )
                logger.warning("Deadline reached, giving up on backend", backend=name, attempt=attempt + 1,
                               elapsed_ms=self._elapsed_ms(start))
                break

            self._count(total_retries=1)
            logger.warning(
                "Transient backend error, retrying",
                backend=name,
                operation=operation,
                attempt=f"{attempt + 1}/{max_attempts}",
                delay_s=round(delay, 2),
                error=str(last_error),
                elapsed_ms=self._elapsed_ms(start),
            )
            time.sleep(delay)

        if self.health_store.record_failure(name, self.config.failure_threshold):
            self._count(circuit_breaker_trips=1)
            logger.error(
                "Circuit breaker opened",
                backend=name,
                threshold=self.config.failure_threshold,
                cooldown=self.config.cooldown_seconds,
            )

        return None, last_error, attempt + 1


def create_gateway(
    config: Optional[GatewayConfig] = None,
    health_store: Optional[HealthStore] = None,
) -> GenerationGateway:
    """
    Build a gateway from config (settings + env by default).

    Backends come from the adapter registry in [primary, fallback] order.
    Unknown backends and backends without credentials are skipped.

    Raises:
        ConfigurationError: no usable backend left
    """
    config = config or GatewayConfig.from_settings()
    adapters: List[BackendAdapter] = []

    for name in config.backend_order:
        adapter_class = get_adapter_class(name)
        if adapter_class is None:
            logger.warning("Unknown backend, skipping", backend=name)
            continue
        backend_settings = config.backend(name)
        if adapter_class.requires_api_key(backend_settings) and not backend_settings.api_key:
            logger.warning("Backend has no API key, skipping", backend=name)
            continue
        adapters.append(adapter_class(backend_settings, timeout=config.timeout_seconds))

    if not adapters:
        raise ConfigurationError(
            f"No usable generation backend (tried {', '.join(config.backend_order)})"
        )

    logger.info("Generation gateway ready", backends=[a.name for a in adapters])
    return GenerationGateway(adapters, config, health_store=health_store)

"""
Shared pytest fixtures for query understanding tests.

Provides fixtures for:
- Fake monotonic clock
- Scripted backend adapters (no network)
- Gateway factory with an isolated health store
- Feature flag overrides
"""

import sys
from pathlib import Path
from typing import Any, Iterable, List, Optional
from unittest.mock import patch

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from query_understanding.exceptions import FatalBackendError, TransientBackendError
from query_understanding.feature_flags import flags
from query_understanding.llm import (
    BackendSettings,
    EmbeddingResponse,
    GatewayConfig,
    GenerateResponse,
    GenerationGateway,
    InMemoryHealthStore,
)
from query_understanding.llm.adapters import BackendAdapter


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# =============================================================================
# Scripted adapters
# =============================================================================

def rate_limited(backend: str = "primary", retry_after: Optional[float] = None) -> TransientBackendError:
    return TransientBackendError("Rate limited", backend=backend, status_code=429, retry_after=retry_after)


def bad_request(backend: str = "primary") -> FatalBackendError:
    return FatalBackendError("Invalid model", backend=backend, status_code=400)


class ScriptedAdapter(BackendAdapter):
    """
    Adapter replaying a script of outcomes.

    Each item is either an exception (raised) or a string (returned as text).
    When the script runs out the last item repeats.
    """

    def __init__(self, name: str, script: Iterable[Any] = ("ok",), dimensions: int = 768):
        super().__init__(BackendSettings(api_key="test-key", model=f"{name}-model",
                                         embedding_dimensions=dimensions))
        self.name = name
        self.script: List[Any] = list(script)
        self.calls = 0
        self.healthy = True

    def _next(self) -> Any:
        index = min(self.calls, len(self.script) - 1)
        self.calls += 1
        outcome = self.script[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def generate(self, request):
        text = self._next()
        return GenerateResponse(text=text, backend=self.name, model=self.model)

    def get_embedding(self, request):
        outcome = self._next()
        vector = outcome if isinstance(outcome, list) else [0.1] * self.embedding_dimensions
        return EmbeddingResponse(vector=vector, backend=self.name)

    def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def scripted_adapter():
    """Factory: scripted_adapter("deepinfra", [rate_limited(), "ok"])"""
    return ScriptedAdapter


@pytest.fixture
def make_gateway(fake_clock):
    """Factory for gateways with an isolated health store and fake clock."""
    def _create(adapters, **overrides) -> GenerationGateway:
        options = dict(
            primary_backend=adapters[0].name,
            fallback_backend=adapters[1].name if len(adapters) > 1 else "none",
            base_retry_delay_ms=100,
            max_retry_delay_ms=1000,
            max_retries=2,
            failure_threshold=3,
            cooldown_seconds=60,
            deadline_seconds=45,
        )
        options.update(overrides)
        config = GatewayConfig(**options)
        store = InMemoryHealthStore(clock=fake_clock)
        return GenerationGateway(adapters, config, health_store=store, clock=fake_clock)
    return _create


@pytest.fixture
def no_sleep():
    """Patch out backoff sleeps; the mock records requested delays."""
    with patch("query_understanding.llm.gateway.time.sleep") as mock_sleep:
        yield mock_sleep


# =============================================================================
# Feature flags
# =============================================================================

@pytest.fixture(autouse=True)
def reset_flag_overrides():
    """Every test starts and ends without runtime flag overrides."""
    flags.clear_all_overrides()
    yield
    flags.clear_all_overrides()


@pytest.fixture
def flag_override():
    """flag_override("llm_escalation", False)"""
    def _set(name: str, value: bool) -> None:
        flags.set_override(name, value)
    return _set

"""
Tests for the generation gateway.

Tests cover:
- Retry with exponential and fixed backoff
- Retry-After hints and the delay cap
- Circuit breaker across calls
- Fallback chain and AllBackendsFailedError
- Per-call deadline
- Embedding dimension checks
- Stats, status and health check
- create_gateway() from config
"""

from unittest.mock import patch

import pytest

from conftest import bad_request, rate_limited
from query_understanding.exceptions import (
    AllBackendsFailedError,
    ConfigurationError,
    TransientBackendError,
)
from query_understanding.llm import (
    BackendSettings,
    ChatMessage,
    EmbeddingRequest,
    GatewayConfig,
    GenerateRequest,
    InMemoryHealthStore,
    create_gateway,
)


def make_request(text: str = "ECE people from 2005 batch") -> GenerateRequest:
    return GenerateRequest(messages=[ChatMessage("user", text)])


class TestRetry:
    """Tests for the per-backend retry loop"""

    def test_success_first_try(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", ["hello"])
        gateway = make_gateway([primary])

        response = gateway.generate(make_request())

        assert response.text == "hello"
        assert response.backend == "primary"
        assert response.attempts == 1
        no_sleep.assert_not_called()

    def test_transient_then_success(self, scripted_adapter, make_gateway, no_sleep):
        """One rate limit, then an answer from the same backend"""
        primary = scripted_adapter("primary", [rate_limited(), "hello"])
        gateway = make_gateway([primary])

        response = gateway.generate(make_request())

        assert response.backend == "primary"
        assert response.attempts == 2
        assert no_sleep.call_count == 1
        assert gateway.get_backend_status()[0]["consecutive_failures"] == 0

    def test_rate_limited_primary_falls_back(self, scripted_adapter, make_gateway, no_sleep):
        """Three rate limits with max_retries=2: two sleeps, then the fallback answers"""
        primary = scripted_adapter("primary", [rate_limited()])
        fallback = scripted_adapter("fallback", ["from fallback"])
        gateway = make_gateway([primary, fallback], max_retries=2, base_retry_delay_ms=100)

        response = gateway.generate(make_request())

        assert primary.calls == 3
        assert [c.args[0] for c in no_sleep.call_args_list] == [0.1, 0.2]
        assert response.backend == "fallback"
        assert response.text == "from fallback"

    def test_fatal_error_not_retried(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [bad_request()])
        fallback = scripted_adapter("fallback", ["ok"])
        gateway = make_gateway([primary, fallback])

        response = gateway.generate(make_request())

        assert primary.calls == 1
        no_sleep.assert_not_called()
        assert response.backend == "fallback"

    def test_unexpected_adapter_exception_is_fatal(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [RuntimeError("bug")])
        fallback = scripted_adapter("fallback", ["ok"])
        gateway = make_gateway([primary, fallback])

        response = gateway.generate(make_request())

        assert primary.calls == 1
        assert response.backend == "fallback"

    def test_no_retries(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [rate_limited()])
        gateway = make_gateway([primary], max_retries=0)

        with pytest.raises(AllBackendsFailedError):
            gateway.generate(make_request())

        assert primary.calls == 1
        no_sleep.assert_not_called()


class TestBackoff:
    """Tests for backoff_seconds()"""

    def test_exponential(self, scripted_adapter, make_gateway):
        gateway = make_gateway([scripted_adapter("primary")], base_retry_delay_ms=100,
                               max_retry_delay_ms=10000)
        assert [gateway.backoff_seconds(n) for n in range(4)] == [0.1, 0.2, 0.4, 0.8]

    def test_fixed(self, scripted_adapter, make_gateway):
        gateway = make_gateway([scripted_adapter("primary")], retry_backoff_mode="fixed",
                               base_retry_delay_ms=250)
        assert [gateway.backoff_seconds(n) for n in range(3)] == [0.25, 0.25, 0.25]

    def test_capped(self, scripted_adapter, make_gateway):
        gateway = make_gateway([scripted_adapter("primary")], base_retry_delay_ms=800,
                               max_retry_delay_ms=1000)
        assert gateway.backoff_seconds(0) == 0.8
        assert gateway.backoff_seconds(1) == 1.0
        assert gateway.backoff_seconds(5) == 1.0

    def test_retry_after_raises_delay(self, scripted_adapter, make_gateway):
        gateway = make_gateway([scripted_adapter("primary")], base_retry_delay_ms=100,
                               max_retry_delay_ms=1000)
        assert gateway.backoff_seconds(0, retry_after=0.5) == 0.5
        assert gateway.backoff_seconds(0, retry_after=30) == 1.0
        assert gateway.backoff_seconds(2, retry_after=0.01) == 0.4

    def test_retry_after_flag_off(self, scripted_adapter, make_gateway, flag_override):
        flag_override("retry_after_header", False)
        gateway = make_gateway([scripted_adapter("primary")], base_retry_delay_ms=100)
        assert gateway.backoff_seconds(0, retry_after=0.5) == 0.1

    def test_retry_after_used_in_loop(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [rate_limited(retry_after=0.7), "ok"])
        gateway = make_gateway([primary], base_retry_delay_ms=100, max_retry_delay_ms=1000)

        gateway.generate(make_request())

        no_sleep.assert_called_once_with(0.7)


class TestCircuitBreaker:
    """Tests for circuit breaking across calls"""

    def test_opens_after_threshold(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [bad_request()])
        gateway = make_gateway([primary], failure_threshold=3)

        for _ in range(3):
            with pytest.raises(AllBackendsFailedError):
                gateway.generate(make_request())

        status = gateway.get_backend_status()[0]
        assert status == {"name": "primary", "circuit_open": True, "consecutive_failures": 3}
        assert gateway.get_stats_dict()["circuit_breaker_trips"] == 1

    def test_open_circuit_skips_backend(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [bad_request()])
        gateway = make_gateway([primary], failure_threshold=3)
        for _ in range(3):
            with pytest.raises(AllBackendsFailedError):
                gateway.generate(make_request())

        with pytest.raises(AllBackendsFailedError) as exc_info:
            gateway.generate(make_request())

        assert primary.calls == 3
        assert exc_info.value.errors["primary"] == "circuit open"

    def test_open_primary_goes_straight_to_fallback(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [bad_request()])
        fallback = scripted_adapter("fallback", ["ok"])
        gateway = make_gateway([primary, fallback], failure_threshold=2)

        for _ in range(3):
            response = gateway.generate(make_request())
            assert response.backend == "fallback"

        assert primary.calls == 2
        assert gateway.get_stats_dict()["fallback_used"] == 3

    def test_closes_after_cooldown(self, scripted_adapter, make_gateway, fake_clock, no_sleep):
        primary = scripted_adapter("primary", [bad_request(), bad_request(), "recovered"])
        gateway = make_gateway([primary], failure_threshold=2, cooldown_seconds=60)
        for _ in range(2):
            with pytest.raises(AllBackendsFailedError):
                gateway.generate(make_request())
        assert gateway.get_backend_status()[0]["circuit_open"] is True

        fake_clock.advance(59)
        assert gateway.get_backend_status()[0]["circuit_open"] is True

        fake_clock.advance(1)
        status = gateway.get_backend_status()[0]
        assert status["circuit_open"] is False
        assert status["consecutive_failures"] == 0
        assert gateway.generate(make_request()).text == "recovered"

    def test_exhausted_retries_count_once(self, scripted_adapter, make_gateway, no_sleep):
        """All attempts of one call record a single failure"""
        primary = scripted_adapter("primary", [rate_limited()])
        gateway = make_gateway([primary], max_retries=2, failure_threshold=5)

        with pytest.raises(AllBackendsFailedError):
            gateway.generate(make_request())

        assert gateway.get_backend_status()[0]["consecutive_failures"] == 1

    def test_reset_circuit_breakers(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [bad_request()])
        gateway = make_gateway([primary], failure_threshold=1)
        with pytest.raises(AllBackendsFailedError):
            gateway.generate(make_request())

        gateway.reset_circuit_breakers()

        assert gateway.get_backend_status()[0]["circuit_open"] is False


class TestAllBackendsFailed:
    """Tests for the terminal error"""

    def test_carries_every_backend_error(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [bad_request("primary")])
        fallback = scripted_adapter("fallback", [rate_limited("fallback")])
        gateway = make_gateway([primary, fallback], max_retries=1)

        with pytest.raises(AllBackendsFailedError) as exc_info:
            gateway.generate(make_request())

        errors = exc_info.value.errors
        assert set(errors) == {"primary", "fallback"}
        assert errors["primary"].status_code == 400
        assert errors["fallback"].transient is True
        assert exc_info.value.operation == "generate"

    def test_failed_request_counted(self, scripted_adapter, make_gateway, no_sleep):
        gateway = make_gateway([scripted_adapter("primary", [bad_request()])])
        with pytest.raises(AllBackendsFailedError):
            gateway.generate(make_request())

        stats = gateway.get_stats_dict()
        assert stats["total_requests"] == 1
        assert stats["failed_requests"] == 1
        assert stats["success_rate"] == 0.0


class TestDeadline:
    """Tests for the per-call deadline"""

    def test_no_attempt_after_deadline(self, scripted_adapter, make_gateway, fake_clock, no_sleep):
        no_sleep.side_effect = fake_clock.advance
        primary = scripted_adapter("primary", [rate_limited()])
        gateway = make_gateway([primary], max_retries=5, base_retry_delay_ms=100,
                               deadline_seconds=0.15)

        with pytest.raises(AllBackendsFailedError) as exc_info:
            gateway.generate(make_request())

        # t=0 fail, sleep 0.1, t=0.1 fail, next sleep 0.2 would cross the deadline
        assert primary.calls == 2
        error = exc_info.value.errors["primary"]
        assert isinstance(error, TransientBackendError)
        assert "Deadline" in error.message

    def test_fallback_skipped_after_deadline(self, scripted_adapter, make_gateway, fake_clock, no_sleep):
        primary = scripted_adapter("primary", [bad_request()])
        fallback = scripted_adapter("fallback", ["ok"])
        gateway = make_gateway([primary, fallback], deadline_seconds=1)
        real_generate = primary.generate

        def slow_generate(request):
            fake_clock.advance(2)
            return real_generate(request)

        primary.generate = slow_generate

        with pytest.raises(AllBackendsFailedError) as exc_info:
            gateway.generate(make_request())

        assert fallback.calls == 0
        assert exc_info.value.errors["fallback"] == "deadline exceeded"


class TestLogging:
    """Retry, skip and fallback lines carry elapsed time"""

    def test_warnings_carry_elapsed_ms(self, scripted_adapter, make_gateway, fake_clock, no_sleep):
        no_sleep.side_effect = fake_clock.advance
        primary = scripted_adapter("primary", [rate_limited()])
        fallback = scripted_adapter("fallback", ["ok"])
        gateway = make_gateway([primary, fallback], failure_threshold=1)

        with patch("query_understanding.llm.gateway.logger") as mock_logger:
            gateway.generate(make_request())
            gateway.generate(make_request())

        lines = {c.args[0]: c.kwargs for c in mock_logger.warning.call_args_list}
        for message in ("Transient backend error, retrying",
                        "Falling back to next backend",
                        "Backend skipped, circuit open"):
            assert "elapsed_ms" in lines[message]
        # two backoff sleeps of 0.1s and 0.2s before giving up on the primary
        assert lines["Falling back to next backend"]["elapsed_ms"] == pytest.approx(300.0)


class TestEmbeddings:
    """Tests for get_embedding()"""

    def test_embedding(self, scripted_adapter, make_gateway, no_sleep):
        gateway = make_gateway([scripted_adapter("primary", [[0.5] * 768])])

        response = gateway.get_embedding(EmbeddingRequest("web development"))

        assert response.dimensions == 768
        assert response.backend == "primary"

    def test_mismatched_adapters_rejected(self, scripted_adapter, make_gateway):
        with pytest.raises(ConfigurationError):
            make_gateway([scripted_adapter("primary", dimensions=768),
                          scripted_adapter("fallback", dimensions=1024)])

    def test_wrong_dimension_response_is_fatal(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [[0.5] * 10])
        fallback = scripted_adapter("fallback", [[0.5] * 768])
        gateway = make_gateway([primary, fallback])

        response = gateway.get_embedding(EmbeddingRequest("text"))

        assert primary.calls == 1
        assert response.backend == "fallback"


class TestStatusAndHealth:
    """Tests for stats, status and health check"""

    def test_stats_after_fallback(self, scripted_adapter, make_gateway, no_sleep):
        primary = scripted_adapter("primary", [rate_limited()])
        fallback = scripted_adapter("fallback", ["ok"])
        gateway = make_gateway([primary, fallback], max_retries=2)

        gateway.generate(make_request())

        stats = gateway.get_stats_dict()
        assert stats["total_requests"] == 1
        assert stats["successful_requests"] == 1
        assert stats["fallback_used"] == 1
        assert stats["total_retries"] == 2
        assert stats["success_rate"] == 100.0

    def test_backend_status_order(self, scripted_adapter, make_gateway):
        gateway = make_gateway([scripted_adapter("primary"), scripted_adapter("fallback")])
        assert [s["name"] for s in gateway.get_backend_status()] == ["primary", "fallback"]

    def test_health_check(self, scripted_adapter, make_gateway):
        primary = scripted_adapter("primary")
        fallback = scripted_adapter("fallback")
        fallback.healthy = False
        gateway = make_gateway([primary, fallback])

        assert gateway.health_check() == {"primary": True, "fallback": False}

    def test_health_check_never_raises(self, scripted_adapter, make_gateway):
        primary = scripted_adapter("primary")

        def broken():
            raise RuntimeError("boom")

        primary.health_check = broken
        gateway = make_gateway([primary])

        assert gateway.health_check() == {"primary": False}

    def test_empty_chain_rejected(self):
        from query_understanding.llm import GenerationGateway

        with pytest.raises(ConfigurationError):
            GenerationGateway([], GatewayConfig())


class TestCreateGateway:
    """Tests for create_gateway()"""

    def _config(self, **overrides):
        options = dict(
            primary_backend="deepinfra",
            fallback_backend="gemini",
            backends={
                "deepinfra": BackendSettings(api_key="di-key", model="meta-llama/Meta-Llama-3.1-8B-Instruct",
                                             base_url="https://api.deepinfra.com/v1/inference"),
                "gemini": BackendSettings(api_key="g-key", model="gemini-2.0-flash",
                                          base_url="https://generativelanguage.googleapis.com/v1beta"),
            },
        )
        options.update(overrides)
        return GatewayConfig(**options)

    def test_primary_then_fallback(self):
        gateway = create_gateway(self._config(), health_store=InMemoryHealthStore())
        assert gateway.backend_names == ["deepinfra", "gemini"]

    def test_fallback_none(self):
        gateway = create_gateway(self._config(fallback_backend="none"), health_store=InMemoryHealthStore())
        assert gateway.backend_names == ["deepinfra"]

    def test_missing_credentials_skipped(self):
        config = self._config(backends={
            "deepinfra": BackendSettings(api_key=None),
            "gemini": BackendSettings(api_key="g-key"),
        })
        gateway = create_gateway(config, health_store=InMemoryHealthStore())
        assert gateway.backend_names == ["gemini"]

    def test_unknown_backend_skipped(self):
        gateway = create_gateway(self._config(primary_backend="nonexistent"), health_store=InMemoryHealthStore())
        assert gateway.backend_names == ["gemini"]

    def test_no_usable_backend(self):
        config = self._config(backends={})
        with pytest.raises(ConfigurationError):
            create_gateway(config, health_store=InMemoryHealthStore())

    def test_local_openai_server_needs_no_key(self):
        config = self._config(
            primary_backend="openai",
            fallback_backend="none",
            backends={"openai": BackendSettings(base_url="http://localhost:8000/v1", model="Qwen/Qwen3-4B")},
        )
        gateway = create_gateway(config, health_store=InMemoryHealthStore())
        assert gateway.backend_names == ["openai"]

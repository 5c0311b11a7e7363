"""
Gateway configuration.

Built once from settings (plus LLM_* environment overrides) and passed to the
gateway by constructor. Frozen: the gateway never re-reads settings.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from query_understanding.exceptions import ConfigurationError
from query_understanding.settings import settings as default_settings


BACKOFF_MODES = ("exponential", "fixed")
NO_FALLBACK = "none"

# env var -> (gateway key, type)
ENV_OVERRIDES = {
    "LLM_PROVIDER_PRIMARY": ("primary_backend", str),
    "LLM_PROVIDER_FALLBACK": ("fallback_backend", str),
    "LLM_RETRY_BACKOFF_MODE": ("retry_backoff_mode", str),
    "LLM_RETRY_DELAY_MS": ("base_retry_delay_ms", int),
    "LLM_MAX_RETRIES": ("max_retries", int),
    "LLM_TIMEOUT_SECONDS": ("timeout_seconds", float),
}


@dataclass(frozen=True)
class BackendSettings:
    """Connection settings for one backend."""
    api_key: Optional[str] = None
    model: str = ""
    embedding_model: str = ""
    base_url: str = ""
    embedding_dimensions: int = 768

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> "BackendSettings":
        environ = os.environ if environ is None else environ
        api_key = data.get("api_key")
        if not api_key and data.get("api_key_env"):
            api_key = environ.get(data["api_key_env"])
        return cls(
            api_key=api_key or None,
            model=data.get("model", ""),
            embedding_model=data.get("embedding_model", ""),
            base_url=data.get("base_url", ""),
            embedding_dimensions=int(data.get("embedding_dimensions", 768)),
        )


@dataclass(frozen=True)
class GatewayConfig:
    primary_backend: str = "deepinfra"
    fallback_backend: str = "gemini"
    retry_backoff_mode: str = "exponential"
    base_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 10000
    max_retries: int = 3
    failure_threshold: int = 5
    cooldown_seconds: float = 60.0
    timeout_seconds: float = 15.0
    deadline_seconds: float = 45.0
    backends: Dict[str, BackendSettings] = field(default_factory=dict)

    def __post_init__(self):
        if self.retry_backoff_mode not in BACKOFF_MODES:
            raise ConfigurationError(
                f"retry_backoff_mode must be one of {BACKOFF_MODES}, got '{self.retry_backoff_mode}'"
            )
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        if self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be >= 1")

    @property
    def backend_order(self):
        """[primary] or [primary, fallback]."""
        order = [self.primary_backend]
        fallback = self.fallback_backend
        if fallback and fallback != NO_FALLBACK and fallback != self.primary_backend:
            order.append(fallback)
        return order

    def backend(self, name: str) -> BackendSettings:
        return self.backends.get(name, BackendSettings())

    @classmethod
    def from_settings(cls, settings=None, environ: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        """
        Build config from the settings tree.

        LLM_* environment variables override the gateway section.
        """
        settings = settings or default_settings
        environ = os.environ if environ is None else environ

        gateway = dict(settings.get("gateway", {}))
        for env_name, (key, cast) in ENV_OVERRIDES.items():
            raw = environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                gateway[key] = cast(raw.strip().lower() if cast is str else raw)
            except ValueError:
                raise ConfigurationError(f"{env_name}={raw!r} is not a valid {cast.__name__}")

        backends = {
            name: BackendSettings.from_dict(data, environ)
            for name, data in settings.get("backends", {}).items()
        }

        return cls(
            primary_backend=gateway.get("primary_backend", "deepinfra"),
            fallback_backend=gateway.get("fallback_backend", NO_FALLBACK) or NO_FALLBACK,
            retry_backoff_mode=gateway.get("retry_backoff_mode", "exponential"),
            base_retry_delay_ms=int(gateway.get("base_retry_delay_ms", 1000)),
            max_retry_delay_ms=int(gateway.get("max_retry_delay_ms", 10000)),
            max_retries=int(gateway.get("max_retries", 3)),
            failure_threshold=int(gateway.get("failure_threshold", 5)),
            cooldown_seconds=float(gateway.get("cooldown_seconds", 60)),
            timeout_seconds=float(gateway.get("timeout_seconds", 15)),
            deadline_seconds=float(gateway.get("deadline_seconds", 45)),
            backends=backends,
        )

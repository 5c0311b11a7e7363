"""
YAML configuration with code defaults underneath.

Usage:
    from query_understanding.settings import settings

    primary = settings.gateway.primary_backend
    threshold = settings.understanding.intent_confidence_threshold

QUERY_UNDERSTANDING_SETTINGS points at an alternative YAML file.
"""

import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml


SETTINGS_FILE = Path(__file__).parent / "settings.yaml"
SETTINGS_ENV = "QUERY_UNDERSTANDING_SETTINGS"

_log = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "gateway": {
        "primary_backend": "deepinfra",
        "fallback_backend": "gemini",
        "retry_backoff_mode": "exponential",
        "base_retry_delay_ms": 1000,
        "max_retry_delay_ms": 10000,
        "max_retries": 3,
        "failure_threshold": 5,
        "cooldown_seconds": 60,
        "timeout_seconds": 15,
        "deadline_seconds": 45,
    },
    "backends": {
        "deepinfra": {
            "api_key_env": "DEEPINFRA_API_KEY",
            "model": "meta-llama/Meta-Llama-3.1-8B-Instruct",
            "embedding_model": "BAAI/bge-base-en-v1.5",
            "base_url": "https://api.deepinfra.com/v1/inference",
            "embedding_dimensions": 768,
        },
        "gemini": {
            "api_key_env": "GOOGLE_API_KEY",
            "model": "gemini-2.0-flash",
            "embedding_model": "text-embedding-004",
            "base_url": "https://generativelanguage.googleapis.com/v1beta",
            "embedding_dimensions": 768,
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "model": "gpt-4o-mini",
            "embedding_model": "text-embedding-3-small",
            "base_url": "https://api.openai.com/v1",
            "embedding_dimensions": 768,
        },
    },
    "understanding": {
        "extractor_escalation_threshold": 0.5,
        "intent_confidence_threshold": 0.5,
        "regex_weight": 0.4,
        "generated_weight": 0.6,
        "generated_default_confidence": 0.7,
        "complex_query_max_words": 20,
        "generation_temperature": 0.1,
        "generation_max_tokens": 512,
    },
    "logging": {
        "level": "INFO",
    },
    "feature_flags": {},
}

# understanding.* values that are probabilities or weights
UNIT_INTERVAL_KEYS = (
    "extractor_escalation_threshold",
    "intent_confidence_threshold",
    "regex_weight",
    "generated_weight",
    "generated_default_confidence",
)


class DotDict(dict):
    """
    dict whose keys double as attributes, nested sections included.

        settings.gateway.max_retries == settings["gateway"]["max_retries"]
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        for key, value in self.items():
            if isinstance(value, dict) and not isinstance(value, DotDict):
                dict.__setitem__(self, key, DotDict(value))

    def __getattr__(self, key: str) -> Any:
        if key not in self:
            raise AttributeError(f"Setting '{key}' not found")
        return self[key]

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def get_nested(self, path: str, default: Any = None) -> Any:
        """Look up a dotted path such as 'gateway.max_retries'."""
        node: Any = self
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node


def _merged(base: Mapping[str, Any], layer: Mapping[str, Any]) -> Dict[str, Any]:
    out = deepcopy(dict(base))
    for key, value in layer.items():
        below = out.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            out[key] = _merged(below, value)
        else:
            out[key] = value
    return out


def _settings_path(filepath: Optional[Path]) -> Path:
    if filepath is not None:
        return Path(filepath)
    from_env = os.environ.get(SETTINGS_ENV)
    return Path(from_env) if from_env else SETTINGS_FILE


def load_settings(filepath: Optional[Path] = None) -> DotDict:
    """
    Build settings from DEFAULTS with the YAML file layered on top.

    The file is the explicit ``filepath``, else $QUERY_UNDERSTANDING_SETTINGS,
    else the bundled settings.yaml. A missing file leaves pure defaults.
    """
    path = _settings_path(filepath)
    if not path.exists():
        _log.warning("Settings file %s not found, using defaults", path)
        return DotDict(deepcopy(DEFAULTS))

    with path.open(encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    return DotDict(_merged(DEFAULTS, loaded))


def _check_gateway(gateway: DotDict, backends: DotDict) -> List[str]:
    problems = []
    primary = gateway.get("primary_backend")
    if not primary:
        problems.append("gateway.primary_backend is not set")
    elif primary not in backends:
        problems.append(f"gateway.primary_backend '{primary}' has no backends entry")

    fallback = gateway.get("fallback_backend")
    if fallback and fallback != "none" and fallback not in backends:
        problems.append(f"gateway.fallback_backend '{fallback}' has no backends entry")

    if gateway.get("retry_backoff_mode") not in ("exponential", "fixed"):
        problems.append("gateway.retry_backoff_mode must be 'exponential' or 'fixed'")

    lower_bounds = (
        ("max_retries", 0, ">= 0"),
        ("base_retry_delay_ms", 0, ">= 0"),
        ("failure_threshold", 1, ">= 1"),
    )
    for key, minimum, label in lower_bounds:
        if gateway.get(key, minimum) < minimum:
            problems.append(f"gateway.{key} must be {label}")
    if gateway.get("timeout_seconds", 1) <= 0:
        problems.append("gateway.timeout_seconds must be > 0")
    return problems


def _check_understanding(understanding: DotDict) -> List[str]:
    problems = [
        f"understanding.{key} must be between 0 and 1"
        for key in UNIT_INTERVAL_KEYS
        if not 0 <= understanding.get(key, 0) <= 1
    ]
    total = understanding.get("regex_weight", 0) + understanding.get("generated_weight", 0)
    if abs(total - 1.0) > 1e-6:
        problems.append("understanding.regex_weight + generated_weight must equal 1")
    return problems


def validate_settings(settings: DotDict) -> List[str]:
    """Return human-readable problems; an empty list means usable."""
    backends = settings.get("backends", DotDict())
    errors = _check_gateway(settings.get("gateway", DotDict()), backends)

    # vectors from different backends must be comparable after a failover
    sizes = {name: spec.get("embedding_dimensions") for name, spec in backends.items()}
    if len(set(sizes.values())) > 1:
        errors.append(f"backends disagree on embedding_dimensions: {sizes}")

    errors.extend(_check_understanding(settings.get("understanding", DotDict())))
    return errors


_settings: Optional[DotDict] = None


def get_settings() -> DotDict:
    """Process-wide settings, loaded and validated on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
        for problem in validate_settings(_settings):
            _log.warning("Invalid setting: %s", problem)
    return _settings


def reload_settings() -> DotDict:
    global _settings
    _settings = None
    return get_settings()


settings = get_settings()

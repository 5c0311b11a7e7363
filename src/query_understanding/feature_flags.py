"""
Feature flags for the query understanding engine.

Usage:
    from query_understanding.feature_flags import flags

    if flags.llm_escalation:
        ...

Resolution order, later wins:
    DEFAULTS -> settings.feature_flags -> FF_<NAME> env -> set_override()
"""

import os
from typing import Dict, List, Mapping, Optional, Set

from query_understanding.settings import settings


TRUTHY = ("true", "1", "yes", "on")


def _env_flag(name: str, environ: Mapping[str, str]) -> Optional[bool]:
    raw = environ.get(f"FF_{name.upper()}")
    if raw is None:
        return None
    return raw.strip().lower() in TRUTHY


class FeatureFlags:
    """Boolean switches with layered sources and runtime overrides."""

    DEFAULTS: Dict[str, bool] = {
        "llm_escalation": True,           # hard queries may call the generation gateway
        "parallel_understanding": False,  # classifier and extractor on a thread pool
        "name_extraction": True,          # regex person name / organization capture
        "retry_after_header": True,       # vendor Retry-After may stretch backoff
    }

    GROUPS: Dict[str, List[str]] = {
        "safe": ["llm_escalation", "name_extraction", "retry_after_header"],
        "all": list(DEFAULTS),
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ
        self._resolved: Dict[str, bool] = {}
        self._overrides: Dict[str, bool] = {}
        self._resolve()

    def _resolve(self) -> None:
        environ = os.environ if self._environ is None else self._environ
        configured = settings.get_nested("feature_flags", {}) or {}

        resolved = dict(self.DEFAULTS)
        resolved.update({k: v for k, v in configured.items() if isinstance(v, bool)})
        for name in list(resolved):
            from_env = _env_flag(name, environ)
            if from_env is not None:
                resolved[name] = from_env
        self._resolved = resolved

    def reload(self) -> None:
        """Re-read settings and environment; drops runtime overrides."""
        self._overrides = {}
        self._resolve()

    def is_enabled(self, flag: str) -> bool:
        return self._overrides.get(flag, self._resolved.get(flag, False))

    def set_override(self, flag: str, value: bool) -> None:
        self._overrides[flag] = bool(value)

    def clear_override(self, flag: str) -> None:
        self._overrides.pop(flag, None)

    def clear_all_overrides(self) -> None:
        self._overrides = {}

    def get_all_flags(self) -> Dict[str, bool]:
        return {**self._resolved, **self._overrides}

    def get_enabled_flags(self) -> Set[str]:
        return {name for name, value in self.get_all_flags().items() if value}

    def is_group_enabled(self, group: str, require_all: bool = False) -> bool:
        members = self.GROUPS.get(group)
        if not members:
            return False
        check = all if require_all else any
        return check(self.is_enabled(name) for name in members)

    @property
    def llm_escalation(self) -> bool:
        return self.is_enabled("llm_escalation")

    @property
    def parallel_understanding(self) -> bool:
        return self.is_enabled("parallel_understanding")

    @property
    def name_extraction(self) -> bool:
        return self.is_enabled("name_extraction")

    @property
    def retry_after_header(self) -> bool:
        return self.is_enabled("retry_after_header")


flags = FeatureFlags()

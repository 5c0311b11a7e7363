"""
Backend adapter contract.

An adapter turns a vendor-neutral GenerateRequest/EmbeddingRequest into one
HTTP call and maps every failure onto TransientBackendError (retry) or
FatalBackendError (move on). Adapters never retry themselves.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Type

import requests

from query_understanding.exceptions import (
    BackendError,
    FatalBackendError,
    ResponseParseError,
    TransientBackendError,
)
from query_understanding.llm.config import BackendSettings
from query_understanding.llm.types import (
    EmbeddingRequest,
    EmbeddingResponse,
    GenerateRequest,
    GenerateResponse,
)


TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504, 529})
BUSY_MARKERS = ("busy", "overloaded", "rate limit", "try again")

HEALTH_CHECK_TIMEOUT = 5


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def classify_http_error(
    backend: str,
    status_code: int,
    body: str = "",
    retry_after: Optional[float] = None,
) -> BackendError:
    """Map an HTTP error status onto a transient or fatal backend error."""
    snippet = (body or "")[:200]
    lowered = snippet.lower()
    if status_code in TRANSIENT_STATUS_CODES or any(marker in lowered for marker in BUSY_MARKERS):
        return TransientBackendError(
            f"Backend unavailable: {snippet or 'no body'}",
            backend=backend,
            status_code=status_code,
            retry_after=retry_after,
        )
    return FatalBackendError(
        f"Request rejected: {snippet or 'no body'}",
        backend=backend,
        status_code=status_code,
    )


class BackendAdapter(ABC):
    """One vendor API."""

    name: str = ""

    def __init__(self, backend_settings: BackendSettings, timeout: float = 15.0):
        self.settings = backend_settings
        self.timeout = timeout

    @classmethod
    def requires_api_key(cls, backend_settings: BackendSettings) -> bool:
        return True

    @property
    def model(self) -> str:
        return self.settings.model

    @property
    def embedding_dimensions(self) -> int:
        return self.settings.embedding_dimensions

    @property
    def base_url(self) -> str:
        return self.settings.base_url.rstrip("/")

    @abstractmethod
    def generate(self, request: GenerateRequest) -> GenerateResponse:
        ...

    @abstractmethod
    def get_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        ...

    def health_check(self) -> bool:
        """Cheap liveness check. Adapters override with a real endpoint."""
        return bool(self.settings.api_key)

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _post(self, url: str, payload: Dict[str, Any], params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        POST JSON with a hard timeout and return the decoded body.

        Raises:
            TransientBackendError: timeout, connection error, 429/5xx, busy model
            FatalBackendError: other 4xx, non-JSON body
        """
        try:
            response = requests.post(
                url,
                json=payload,
                headers=self._headers(),
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise TransientBackendError(f"Timeout after {self.timeout}s: {e}", backend=self.name)
        except requests.exceptions.ConnectionError as e:
            raise TransientBackendError(f"Connection error: {e}", backend=self.name)
        except requests.exceptions.RequestException as e:
            raise FatalBackendError(f"Request failed: {e}", backend=self.name)

        if response.status_code >= 400:
            raise classify_http_error(
                self.name,
                response.status_code,
                response.text,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        try:
            return response.json()
        except ValueError:
            raise FatalBackendError("Response body is not JSON", backend=self.name,
                                    status_code=response.status_code)

    def _malformed(self, what: str) -> FatalBackendError:
        return FatalBackendError(f"Malformed response: {what}", backend=self.name)

    def _check_dimensions(self, vector) -> None:
        if len(vector) != self.embedding_dimensions:
            raise FatalBackendError(
                f"Embedding has {len(vector)} dimensions, expected {self.embedding_dimensions}",
                backend=self.name,
            )


def extract_path(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, raising ResponseParseError on a missing step."""
    current = data
    for step in path:
        try:
            current = current[step]
        except (KeyError, IndexError, TypeError):
            raise ResponseParseError(f"missing {'.'.join(str(p) for p in path)}")
    return current


# =============================================================================
# REGISTRY
# =============================================================================

ADAPTERS: Dict[str, Type[BackendAdapter]] = {}


def register_adapter(name: str) -> Callable[[Type[BackendAdapter]], Type[BackendAdapter]]:
    """Class decorator: make an adapter available to create_gateway()."""
    def decorator(cls: Type[BackendAdapter]) -> Type[BackendAdapter]:
        cls.name = name
        ADAPTERS[name] = cls
        return cls
    return decorator


def get_adapter_class(name: str) -> Optional[Type[BackendAdapter]]:
    return ADAPTERS.get(name)

"""Exception hierarchy for the query understanding engine."""

from typing import Dict, Optional, Union


class QueryUnderstandingError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(QueryUnderstandingError):
    """Gateway or adapter configuration is unusable."""


class BackendError(QueryUnderstandingError):
    """A single backend call failed.

    ``transient`` marks rate limits, busy models and timeouts, which the
    gateway retries. Everything else is fatal for the current request.
    """

    def __init__(
        self,
        message: str,
        backend: str,
        status_code: Optional[int] = None,
        transient: bool = False,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.backend = backend
        self.status_code = status_code
        self.transient = transient
        self.retry_after = retry_after

    def __str__(self) -> str:
        status = f" (HTTP {self.status_code})" if self.status_code else ""
        return f"[{self.backend}] {self.message}{status}"


class TransientBackendError(BackendError):
    """Rate limit, busy model, timeout or server error: retryable."""

    def __init__(self, message: str, backend: str, status_code: Optional[int] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, backend, status_code, transient=True, retry_after=retry_after)


class FatalBackendError(BackendError):
    """Bad request, auth failure, unknown model or malformed payload: not retryable."""

    def __init__(self, message: str, backend: str, status_code: Optional[int] = None):
        super().__init__(message, backend, status_code, transient=False)


class AllBackendsFailedError(QueryUnderstandingError):
    """Every configured backend failed or had its circuit open."""

    def __init__(self, operation: str, errors: Dict[str, Union[BackendError, str]]):
        self.operation = operation
        self.errors = errors
        details = "; ".join(f"{name}: {err}" for name, err in errors.items()) or "no backends configured"
        super().__init__(f"All backends failed for {operation}. {details}")


class ResponseParseError(QueryUnderstandingError):
    """A backend replied but the payload did not have the expected shape."""

"""
Structured logging for the query understanding engine.

Readable lines by default, one JSON object per line with LOG_FORMAT=json.
Lines written while a query is being processed carry its request_id.

Usage:
    from query_understanding.logger import logger

    logger.set_request("3f9c2a1b")
    logger.info("Escalating to generation", reason="regex: low confidence (0.35)")
    logger.metric("query_understood", 4.2, method="regex")
"""

import json
import logging
import os
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from query_understanding.settings import settings


ROOT_LOGGER_NAME = "query_understanding"
READABLE_FORMAT = "[%(asctime)s] %(levelname)s - %(message)s"

# METRIC and EVENT lines are emitted at INFO
_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "METRIC": logging.INFO,
    "EVENT": logging.INFO,
}

# Per-context so worker threads and concurrent queries keep their own ids
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_context_fields: ContextVar[Optional[Dict[str, Any]]] = ContextVar("context_fields", default=None)


def _json_mode() -> bool:
    return os.environ.get("LOG_FORMAT", "readable") == "json"


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger that renders keyword fields.

    Every call accepts arbitrary keyword fields:

        logger.warning("Backend skipped, circuit open", backend="gemini")

    Readable mode appends them as ``[key=value, ...]``; JSON mode merges them
    into the line object together with timestamp, level, logger name,
    request_id and any fields set with set_context().
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            self._attach_handler()

    def _attach_handler(self) -> None:
        configured = str(settings.get_nested("logging.level", "INFO")).upper()
        level = _LEVELS.get(configured, logging.INFO)

        handler = logging.StreamHandler()
        handler.setLevel(level)
        if _json_mode():
            handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            handler.setFormatter(logging.Formatter(READABLE_FORMAT, datefmt="%H:%M:%S"))

        self.logger.setLevel(level)
        self.logger.addHandler(handler)
        self.logger.propagate = False

    # =========================================================================
    # Request and context fields
    # =========================================================================

    @property
    def request_id(self) -> Optional[str]:
        return _request_id.get()

    def set_request(self, request_id: str) -> None:
        _request_id.set(request_id)

    def clear_request(self) -> None:
        _request_id.set(None)

    @property
    def _extra_context(self) -> Dict[str, Any]:
        return _context_fields.get() or {}

    def set_context(self, **fields: Any) -> None:
        """Fields added to every following line in this context."""
        _context_fields.set({**self._extra_context, **fields})

    def clear_context(self) -> None:
        _context_fields.set({})

    # =========================================================================
    # Rendering
    # =========================================================================

    def _format_structured(self, level: str, message: str, **fields: Any) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.name,
            "message": message,
        }
        if self.request_id:
            entry["request_id"] = self.request_id
        entry.update(self._extra_context)
        entry.update(fields)
        return entry

    def _render(self, message: str, **fields: Any) -> str:
        line = message
        if fields:
            line += " [" + ", ".join(f"{key}={value}" for key, value in fields.items()) + "]"
        if self.request_id:
            line = f"[{self.request_id}] {line}"
        return line

    def _emit(self, level: str, message: str, fields: Dict[str, Any], exc_info: bool = False) -> None:
        levelno = _LEVELS[level]
        if not self.logger.isEnabledFor(levelno):
            return
        if _json_mode():
            if exc_info:
                fields["traceback"] = traceback.format_exc()
            text = json.dumps(self._format_structured(level, message, **fields),
                              ensure_ascii=False, default=str)
            self.logger.log(levelno, text)
        else:
            self.logger.log(levelno, self._render(message, **fields), exc_info=exc_info)

    # =========================================================================
    # Public API
    # =========================================================================

    def debug(self, message: str, **fields: Any) -> None:
        self._emit("DEBUG", message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit("INFO", message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit("WARNING", message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit("ERROR", message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        """ERROR line with the traceback of the exception being handled."""
        self._emit("ERROR", message, fields, exc_info=True)

    def metric(self, name: str, value: Any, **fields: Any) -> None:
        """
        Numeric measurement for dashboards.

        Example:
            logger.metric("query_understood", 3.1, method="regex", confidence=0.95)
        """
        self._emit("METRIC", name, {"value": value, **fields})

    def event(self, event_type: str, **fields: Any) -> None:
        """
        Discrete state change worth alerting on.

        Example:
            logger.event("circuit_opened", backend="deepinfra", failures=5)
        """
        self._emit("EVENT", event_type, fields)


logger = StructuredLogger(ROOT_LOGGER_NAME)


def create_test_logger(name: str = "test") -> StructuredLogger:
    """Child logger with its own handler, for tests."""
    return StructuredLogger(f"{ROOT_LOGGER_NAME}.{name}")

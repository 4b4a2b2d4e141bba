"""Structured logging for Cadence services.

Every record is emitted as one JSON object. Keyword fields passed to the
logger become top-level keys, and fields that look like credentials are
masked before they reach the handler.
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


_loggers: dict[str, "StructuredLogger"] = {}

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "cadence-core"

# Extra keys that must never be written in clear text
SENSITIVE_FIELDS = frozenset({
    "access_token",
    "refresh_token",
    "code_verifier",
    "verifier",
    "client_secret",
    "api_key",
    "authorization",
})

MASK = "***"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    RESERVED_FIELDS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            entry["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        for key, value in record.__dict__.items():
            if key in self.RESERVED_FIELDS or key.startswith("_"):
                continue
            if key.lower() in SENSITIVE_FIELDS:
                entry[key] = MASK
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        return json.dumps(entry)


@dataclass
class RequestContext:
    """Per-request fields attached to every log line of a workflow."""

    request_id: Optional[str] = None
    identity_id: Optional[int] = None
    client_key: Optional[str] = None
    stage: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.request_id:
            result["request_id"] = self.request_id
        if self.identity_id is not None:
            result["identity_id"] = self.identity_id
        if self.client_key:
            result["client_key"] = self.client_key
        if self.stage:
            result["stage"] = self.stage
        result.update(self.extra)
        return result


class StructuredLogger:
    """Thin wrapper over ``logging.Logger`` that accepts keyword fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Persona stored", identity_id=7, confidence=80)
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        context: Optional[RequestContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        if context:
            kwargs.update(context.to_dict())
        self._logger.log(level, msg, exc_info=exc_info, extra=dict(kwargs))

    def debug(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, context, **kwargs)

    def info(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, context, **kwargs)

    def warning(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, context, **kwargs)

    def error(
        self,
        msg: str,
        context: Optional[RequestContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        self._log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get or create the structured logger for ``name``."""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Emit JSON lines instead of plain text.
        service_name: Value of the ``service`` key in JSON output.
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(handler)

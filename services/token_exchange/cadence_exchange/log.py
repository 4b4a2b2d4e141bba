"""JSON logging for the token exchange service.

Kept separate from the core's observability package so this unit deploys on
its own. Keyword fields become top-level JSON keys; credential-like keys are
masked.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

SERVICE_NAME = "cadence-exchange"

MASKED_KEYS = frozenset({
    "access_token",
    "refresh_token",
    "code",
    "code_verifier",
    "client_secret",
    "authorization",
})

# Attributes every LogRecord carries; anything else came from ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            entry[key] = "***" if key.lower() in MASKED_KEYS else value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ExchangeLogger:
    """``logging.Logger`` wrapper taking keyword fields."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def info(self, msg: str, **fields: Any) -> None:
        self._logger.info(msg, extra=fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._logger.warning(msg, extra=fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._logger.error(msg, exc_info=exc_info, extra=fields)


def get_logger(name: str) -> ExchangeLogger:
    return ExchangeLogger(name)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(handler)

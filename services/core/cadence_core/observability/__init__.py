"""Observability helpers for Cadence services."""

from cadence_core.observability.logging import (
    JsonFormatter,
    RequestContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "JsonFormatter",
    "RequestContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]

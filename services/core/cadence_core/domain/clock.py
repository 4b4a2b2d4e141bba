"""Injectable time source.

Timestamps are stored as naive UTC. Services take a ``clock`` argument so
tests can move time without patching ``datetime``.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

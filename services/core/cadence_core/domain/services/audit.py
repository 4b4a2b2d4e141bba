"""Audit trail for logins, content fetches, persona builds and decisions.

Entries are append-only. ``create_entry`` only flushes; the calling service
commits the entry in the same transaction as the change it describes.
"""

from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from cadence_core.domain.clock import Clock, utcnow
from cadence_core.domain.models import AuditActor, AuditLog, AuditResult

_ACTORS = (AuditActor.USER, AuditActor.SYSTEM, AuditActor.AGENT)
_RESULTS = (AuditResult.OK, AuditResult.ERROR)

ERROR_DETAIL_LIMIT = 2000


class AuditService:
    def __init__(self, db: DBSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def create_entry(
        self,
        actor: str,
        action_type: str,
        result: str,
        identity_id: Optional[int] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        request_json: Optional[dict[str, Any]] = None,
        response_json: Optional[dict[str, Any]] = None,
        error_detail: Optional[str] = None,
    ) -> AuditLog:
        """Add an entry to the current unit of work.

        ``action_type`` is a dotted name such as ``"auth.login"`` or
        ``"content.fetch_posts"``. Long error details are truncated.

        Raises:
            ValueError: Unknown actor or result.
        """
        if actor not in _ACTORS:
            raise ValueError(f"actor must be one of {_ACTORS}, got '{actor}'")
        if result not in _RESULTS:
            raise ValueError(f"result must be one of {_RESULTS}, got '{result}'")

        entry = AuditLog(
            ts=self.clock(),
            actor=actor,
            action_type=action_type,
            result=result,
            identity_id=identity_id,
            entity_type=entity_type,
            entity_id=entity_id,
            request_json=request_json,
            response_json=response_json,
            error_detail=error_detail[:ERROR_DETAIL_LIMIT] if error_detail else None,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

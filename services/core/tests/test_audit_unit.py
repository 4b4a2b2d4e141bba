"""Unit tests for AuditService."""

from datetime import datetime

import pytest

from cadence_core.domain.models import AuditActor, AuditLog, AuditResult
from cadence_core.domain.services.audit import ERROR_DETAIL_LIMIT, AuditService


class TestCreateEntry:
    """Tests for AuditService.create_entry."""

    def test_entry_is_flushed_not_committed(self, db_session, identity):
        """The caller's rollback discards the entry with the rest of its work."""
        entry = AuditService(db_session).create_entry(
            actor=AuditActor.USER,
            action_type="auth.login",
            result=AuditResult.OK,
            identity_id=identity.id,
        )
        assert entry.id is not None

        db_session.rollback()

        assert db_session.query(AuditLog).count() == 0

    def test_uses_injected_clock(self, db_session):
        stamp = datetime(2025, 1, 2, 3, 4, 5)

        entry = AuditService(db_session, clock=lambda: stamp).create_entry(
            actor=AuditActor.SYSTEM, action_type="content.fetch_posts", result=AuditResult.OK
        )

        assert entry.ts == stamp

    def test_long_error_detail_is_truncated(self, db_session):
        entry = AuditService(db_session).create_entry(
            actor=AuditActor.SYSTEM,
            action_type="auth.refresh",
            result=AuditResult.ERROR,
            error_detail="x" * (ERROR_DETAIL_LIMIT + 50),
        )

        assert len(entry.error_detail) == ERROR_DETAIL_LIMIT

    @pytest.mark.parametrize("actor,result", [("robot", AuditResult.OK), (AuditActor.USER, "maybe")])
    def test_rejects_unknown_values(self, db_session, actor, result):
        with pytest.raises(ValueError):
            AuditService(db_session).create_entry(actor=actor, action_type="x", result=result)

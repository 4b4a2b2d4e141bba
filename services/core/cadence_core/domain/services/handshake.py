"""PKCE handshake slot storage.

One row per client key. Writing a new handshake replaces the previous one,
so a second sign-in attempt from the same client silently invalidates the
first. ``take`` is the only read path and always deletes the row: a
handshake is usable at most once.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from cadence_core.domain.clock import Clock, utcnow
from cadence_core.domain.models import OAuthHandshake

DEFAULT_TTL_SECONDS = 600


@dataclass(frozen=True)
class HandshakeState:
    """Verifier and expected state nonce for one authorization attempt."""

    code_verifier: str
    state: str


class HandshakeStore:
    """Database-backed handshake slots."""

    def __init__(
        self,
        db: DBSession,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    def _find(self, client_key: str) -> Optional[OAuthHandshake]:
        return (
            self.db.query(OAuthHandshake)
            .filter(OAuthHandshake.client_key == client_key)
            .first()
        )

    def put(self, client_key: str, handshake: HandshakeState) -> None:
        """Store ``handshake`` in the client's slot, replacing any previous one."""
        now = self.clock()
        row = self._find(client_key)
        if row is None:
            row = OAuthHandshake(client_key=client_key)
            self.db.add(row)
        row.code_verifier = handshake.code_verifier
        row.state = handshake.state
        row.created_at = now
        row.expires_at = now + self.ttl
        self.db.commit()

    def take(self, client_key: str) -> Optional[HandshakeState]:
        """Remove and return the client's handshake.

        Returns:
            The stored handshake, or None if the slot is empty or expired.
        """
        row = self._find(client_key)
        if row is None:
            return None

        expired = row.expires_at <= self.clock()
        handshake = HandshakeState(code_verifier=row.code_verifier, state=row.state)
        self.db.delete(row)
        self.db.commit()

        return None if expired else handshake

    def purge_expired(self) -> int:
        """Delete every expired slot. Returns the number removed."""
        removed = (
            self.db.query(OAuthHandshake)
            .filter(OAuthHandshake.expires_at <= self.clock())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed

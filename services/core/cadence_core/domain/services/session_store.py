"""Session & token store.

A ``SessionStore`` is scoped to one client session id (the session cookie)
and is built per request; nothing is kept at process level. Sessions and
their encrypted tokens live in the database, so a restart does not log
anyone out. Stored state that cannot be read back (bad ciphertext, missing
identity) is reported as "not logged in" rather than raised.

An expired access token is renewed with the stored refresh token through the
exchange service. A session whose token has expired and cannot be renewed
no longer counts as logged in.
"""

import secrets
from datetime import timedelta
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session as DBSession

from cadence_core.domain.clock import Clock, utcnow
from cadence_core.domain.errors import TokenRefreshFailed, UpstreamError
from cadence_core.domain.models import AuditActor, AuditResult, Identity, Session
from cadence_core.domain.services.audit import AuditService
from cadence_core.infrastructure.crypto import DecryptionError, TokenCipher
from cadence_core.observability import get_logger
from cadence_core.providers.base import ProviderProfile, TokenBundle

logger = get_logger(__name__)


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


class TokenRefresher(Protocol):
    async def refresh(self, refresh_token: str) -> TokenBundle:
        ...


class SessionStore:
    """Login state for one client."""

    def __init__(
        self,
        db: DBSession,
        cipher: TokenCipher,
        session_id: Optional[str] = None,
        session_ttl_hours: int = 24 * 30,
        clock: Clock = utcnow,
        id_factory: Callable[[], str] = _new_session_id,
    ):
        self.db = db
        self.cipher = cipher
        self.session_id = session_id
        self.session_ttl = timedelta(hours=session_ttl_hours)
        self.clock = clock
        self.id_factory = id_factory
        self._audit = AuditService(db, clock=clock)
        self.created_identity = False

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _load_session(self) -> Optional[Session]:
        if not self.session_id:
            return None
        session = self.db.get(Session, self.session_id)
        if session is None:
            return None
        if session.expires_at <= self.clock():
            return None
        return session

    def _token_expired(self, session: Session) -> bool:
        return session.token_expires_at is not None and session.token_expires_at <= self.clock()

    def current_identity(self) -> Optional[Identity]:
        """Return the logged-in identity, or None.

        A session whose access token expired still counts while it holds a
        refresh token.
        """
        session = self._load_session()
        if session is None:
            return None
        tokens = self._read_tokens(session)
        if tokens is None:
            return None
        if self._token_expired(session) and not tokens.refresh_token:
            logger.info("Access token expired and cannot be renewed", session_ref=session.id[:8])
            return None
        return session.identity

    def current_tokens(self) -> Optional[TokenBundle]:
        """Return decrypted tokens for the current session, or None.

        Returns None once the access token has expired; see ``fresh_tokens``.
        """
        session = self._load_session()
        if session is None or self._token_expired(session):
            return None
        return self._read_tokens(session)

    async def fresh_tokens(self, refresher: TokenRefresher) -> Optional[TokenBundle]:
        """Return usable tokens, renewing an expired access token first.

        A refresh the provider rejects ends the session. A refresh that
        times out or cannot reach the exchange service leaves the session
        in place and returns None for this call.
        """
        session = self._load_session()
        if session is None:
            return None
        tokens = self._read_tokens(session)
        if tokens is None or not self._token_expired(session):
            return tokens
        if not tokens.refresh_token:
            return None

        try:
            renewed = await refresher.refresh(tokens.refresh_token)
        except TokenRefreshFailed as e:
            if e.status is not None and 400 <= e.status < 500:
                self._end_session(session, reason="refresh_rejected", error=e)
            else:
                logger.warning("Token refresh failed", session_ref=session.id[:8], upstream_status=e.status)
            return None
        except UpstreamError as e:
            logger.warning("Token refresh failed", session_ref=session.id[:8], error_code=e.code)
            return None

        return self._store_refreshed(session, renewed, tokens.refresh_token)

    def _store_refreshed(
        self, session: Session, renewed: TokenBundle, previous_refresh: str
    ) -> TokenBundle:
        now = self.clock()
        refresh_token = renewed.refresh_token or previous_refresh
        session.access_token_encrypted = self.cipher.encrypt(renewed.access_token)
        session.refresh_token_encrypted = self.cipher.encrypt(refresh_token)
        session.token_type = renewed.token_type or session.token_type
        session.scope = renewed.scope or session.scope
        session.token_expires_at = (
            now + timedelta(seconds=renewed.expires_in) if renewed.expires_in is not None else None
        )
        self._audit.create_entry(
            actor=AuditActor.SYSTEM,
            action_type="auth.refresh",
            result=AuditResult.OK,
            identity_id=session.identity_id,
        )
        self.db.commit()
        logger.info("Access token renewed", identity_id=session.identity_id)
        return TokenBundle(
            access_token=renewed.access_token,
            refresh_token=refresh_token,
            token_type=session.token_type,
            scope=session.scope,
            expires_in=renewed.expires_in,
        )

    def _end_session(self, session: Session, reason: str, error: UpstreamError) -> None:
        logger.warning("Session ended", session_ref=session.id[:8], reason=reason)
        self._audit.create_entry(
            actor=AuditActor.SYSTEM,
            action_type="auth.refresh",
            result=AuditResult.ERROR,
            identity_id=session.identity_id,
            error_detail=str(error),
        )
        self.db.delete(session)
        self.db.commit()
        self.session_id = None

    def is_logged_in(self) -> bool:
        return self.current_identity() is not None

    def _read_tokens(self, session: Session) -> Optional[TokenBundle]:
        try:
            access_token = self.cipher.decrypt(session.access_token_encrypted)
            refresh_token = (
                self.cipher.decrypt(session.refresh_token_encrypted)
                if session.refresh_token_encrypted
                else None
            )
        except DecryptionError:
            logger.warning("Stored session tokens are unreadable", session_ref=session.id[:8])
            return None

        if not access_token or session.identity is None:
            logger.warning("Stored session is incomplete", session_ref=session.id[:8])
            return None

        return TokenBundle(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=session.token_type,
            scope=session.scope,
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def persist_login(self, profile: ProviderProfile, tokens: TokenBundle) -> Identity:
        """Upsert the identity and open a session for it.

        On first sight of a platform user id a new internal account is
        provisioned; on repeat logins only the mutable profile fields are
        refreshed. Identity, session and audit row are committed together.

        Returns:
            The upserted Identity. ``self.session_id`` holds the new session.
        """
        now = self.clock()
        identity = (
            self.db.query(Identity)
            .filter(Identity.platform_user_id == profile.external_id)
            .first()
        )
        is_new = identity is None

        try:
            if identity is None:
                identity = Identity(platform_user_id=profile.external_id, created_at=now)
                self.db.add(identity)

            identity.username = profile.username
            identity.display_name = profile.display_name or profile.username
            identity.avatar_url = profile.avatar_url
            identity.verified = profile.is_verified
            identity.updated_at = now
            self.db.flush()

            session = Session(
                id=self.id_factory(),
                identity_id=identity.id,
                access_token_encrypted=self.cipher.encrypt(tokens.access_token),
                refresh_token_encrypted=self.cipher.encrypt_optional(tokens.refresh_token),
                token_type=tokens.token_type,
                scope=tokens.scope,
                issued_at=now,
                token_expires_at=(
                    now + timedelta(seconds=tokens.expires_in)
                    if tokens.expires_in is not None
                    else None
                ),
                expires_at=now + self.session_ttl,
            )
            self.db.add(session)

            self._audit.create_entry(
                actor=AuditActor.USER,
                action_type="auth.login",
                result=AuditResult.OK,
                identity_id=identity.id,
                entity_type="identity",
                entity_id=identity.id,
                response_json={"is_new_identity": is_new, "username": identity.username},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.session_id = session.id
        self.created_identity = is_new
        logger.info("Login persisted", identity_id=identity.id, is_new_identity=is_new)
        return identity

    def logout(self) -> None:
        """Drop the local session.

        Best-effort only: the access token is not revoked at the provider.
        """
        if not self.session_id:
            return
        session = self.db.get(Session, self.session_id)
        if session is not None:
            self._audit.create_entry(
                actor=AuditActor.USER,
                action_type="auth.logout",
                result=AuditResult.OK,
                identity_id=session.identity_id,
            )
            self.db.delete(session)
            self.db.commit()
        self.session_id = None

"""Domain models for Cadence.

SQLAlchemy ORM models for linked X identities, their sessions, fetched
content, personas and engagement suggestions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class ContentKind(str):
    """Content item kinds."""

    POST = "post"
    REPLY = "reply"


class ContentSource(str):
    """Where a content item came from."""

    LIVE = "live"
    SYNTHETIC = "synthetic"


class SuggestionStatus(str):
    """Engagement suggestion lifecycle.

    ``pending`` is the only non-terminal status.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    POSTED = "posted"

    ALL = (PENDING, APPROVED, REJECTED, POSTED)
    TERMINAL = (APPROVED, REJECTED, POSTED)


class AuditActor(str):
    """Audit actor values."""

    USER = "user"
    SYSTEM = "system"
    AGENT = "agent"


class AuditResult(str):
    """Audit result values."""

    OK = "ok"
    ERROR = "error"


# =============================================================================
# MODELS
# =============================================================================


class Identity(Base):
    """A linked X account.

    ``id`` is the internal account id provisioned on first login;
    ``platform_user_id`` is the X user id and is unique.
    """

    __tablename__ = "identities"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    platform_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("platform_user_id", name="uq_identity_platform_user"),
    )

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(back_populates="identity")
    content_items: Mapped[list["ContentItem"]] = relationship(back_populates="identity")
    persona: Mapped[Optional["Persona"]] = relationship(back_populates="identity")
    suggestions: Mapped[list["EngagementSuggestion"]] = relationship(
        back_populates="identity"
    )


class Session(Base):
    """Server-side login session holding encrypted OAuth tokens."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    identity_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("identities.id"), nullable=False
    )

    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    scope: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    issued_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("idx_session_identity", "identity_id"),)

    # Relationships
    identity: Mapped["Identity"] = relationship(back_populates="sessions")


class OAuthHandshake(Base):
    """In-flight PKCE handshake, one slot per client.

    Rows are deleted when consumed; expired rows are ignored and removed.
    """

    __tablename__ = "oauth_handshakes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    client_key: Mapped[str] = mapped_column(String(64), nullable=False)
    code_verifier: Mapped[str] = mapped_column(String(128), nullable=False)
    state: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (UniqueConstraint("client_key", name="uq_handshake_client"),)


class ContentItem(Base):
    """A post or reply authored by a linked identity."""

    __tablename__ = "content_items"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    platform_content_id: Mapped[str] = mapped_column(String(128), nullable=False)
    identity_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("identities.id"), nullable=False
    )

    kind: Mapped[str] = mapped_column(
        Enum("post", "reply", name="content_kind_enum"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repost_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_reply: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_content_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    source: Mapped[str] = mapped_column(
        Enum("live", "synthetic", name="content_source_enum"), nullable=False
    )
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("platform_content_id", name="uq_content_platform_id"),
        Index("idx_content_identity_kind", "identity_id", "kind"),
    )

    # Relationships
    identity: Mapped["Identity"] = relationship(back_populates="content_items")


class Persona(Base):
    """Voice persona derived from an identity's content (one per identity)."""

    __tablename__ = "personas"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("identities.id"), nullable=False
    )

    tone: Mapped[str] = mapped_column(Text, nullable=False)
    topics: Mapped[list] = mapped_column(JSON, nullable=False)
    interaction_style: Mapped[str] = mapped_column(Text, nullable=False)
    identity_description: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)

    model_info_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (UniqueConstraint("identity_id", name="uq_persona_identity"),)

    # Relationships
    identity: Mapped["Identity"] = relationship(back_populates="persona")


class EngagementSuggestion(Base):
    """A drafted reply to a third-party post awaiting a decision."""

    __tablename__ = "engagement_suggestions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("identities.id"), nullable=False
    )

    target_content_id: Mapped[str] = mapped_column(String(128), nullable=False)
    target_author_username: Mapped[str] = mapped_column(String(64), nullable=False)
    target_content_text: Mapped[str] = mapped_column(Text, nullable=False)

    suggested_reply: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    topic: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    engagement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        Enum(
            "pending", "approved", "rejected", "posted",
            name="suggestion_status_enum",
        ),
        nullable=False,
        default="pending",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_suggestion_identity_status", "identity_id", "status"),
    )

    # Relationships
    identity: Mapped["Identity"] = relationship(back_populates="suggestions")


class AuditLog(Base):
    """Append-only audit log (identity-aware)."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    actor: Mapped[str] = mapped_column(
        Enum("user", "system", "agent", name="audit_actor_enum"), nullable=False
    )
    action_type: Mapped[str] = mapped_column(String(128), nullable=False)

    identity_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    request_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    response_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    result: Mapped[str] = mapped_column(
        Enum("ok", "error", name="audit_result_enum"), nullable=False
    )
    error_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_audit_ts", "ts"),
        Index("idx_audit_action", "action_type"),
        Index("idx_audit_identity", "identity_id"),
    )


__all__ = [
    "AuditActor",
    "AuditLog",
    "AuditResult",
    "Base",
    "ContentItem",
    "ContentKind",
    "ContentSource",
    "EngagementSuggestion",
    "Identity",
    "OAuthHandshake",
    "Persona",
    "Session",
    "SuggestionStatus",
]

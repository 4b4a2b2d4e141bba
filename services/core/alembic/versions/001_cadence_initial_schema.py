"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates:
- identities
- sessions
- oauth_handshakes
- content_items
- personas
- engagement_suggestions
- audit_log
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "identities",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("platform_user_id", sa.String(64), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(128), nullable=False),
        sa.Column("avatar_url", sa.String(512), nullable=True),
        sa.Column("verified", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("platform_user_id", name="uq_identity_platform_user"),
    )

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("identity_id", sa.BigInteger, nullable=False),
        sa.Column("access_token_encrypted", sa.Text, nullable=False),
        sa.Column("refresh_token_encrypted", sa.Text, nullable=True),
        sa.Column("token_type", sa.String(32), nullable=True),
        sa.Column("scope", sa.String(255), nullable=True),
        sa.Column("issued_at", sa.DateTime, nullable=False),
        sa.Column("token_expires_at", sa.DateTime, nullable=True),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"], name="fk_session_identity"),
    )
    op.create_index("idx_session_identity", "sessions", ["identity_id"])

    op.create_table(
        "oauth_handshakes",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("client_key", sa.String(64), nullable=False),
        sa.Column("code_verifier", sa.String(128), nullable=False),
        sa.Column("state", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("client_key", name="uq_handshake_client"),
    )

    op.create_table(
        "content_items",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("platform_content_id", sa.String(128), nullable=False),
        sa.Column("identity_id", sa.BigInteger, nullable=False),
        sa.Column("kind", sa.Enum("post", "reply", name="content_kind_enum"), nullable=False),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column("posted_at", sa.DateTime, nullable=True),
        sa.Column("like_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("repost_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reply_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_reply", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("parent_content_id", sa.String(128), nullable=True),
        sa.Column(
            "source",
            sa.Enum("live", "synthetic", name="content_source_enum"),
            nullable=False,
        ),
        sa.Column("fetched_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"], name="fk_content_identity"),
        sa.UniqueConstraint("platform_content_id", name="uq_content_platform_id"),
    )
    op.create_index("idx_content_identity_kind", "content_items", ["identity_id", "kind"])

    op.create_table(
        "personas",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("identity_id", sa.BigInteger, nullable=False),
        sa.Column("tone", sa.Text, nullable=False),
        sa.Column("topics", sa.JSON, nullable=False),
        sa.Column("interaction_style", sa.Text, nullable=False),
        sa.Column("identity_description", sa.Text, nullable=False),
        sa.Column("confidence", sa.Integer, nullable=False),
        sa.Column("model_info_json", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"], name="fk_persona_identity"),
        sa.UniqueConstraint("identity_id", name="uq_persona_identity"),
    )

    op.create_table(
        "engagement_suggestions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("identity_id", sa.BigInteger, nullable=False),
        sa.Column("target_content_id", sa.String(128), nullable=False),
        sa.Column("target_author_username", sa.String(64), nullable=False),
        sa.Column("target_content_text", sa.Text, nullable=False),
        sa.Column("suggested_reply", sa.Text, nullable=False),
        sa.Column("confidence", sa.Integer, nullable=False),
        sa.Column("reasoning", sa.Text, nullable=True),
        sa.Column("topic", sa.String(255), nullable=True),
        sa.Column("engagement_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "approved", "rejected", "posted",
                name="suggestion_status_enum",
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["identity_id"], ["identities.id"], name="fk_suggestion_identity"
        ),
    )
    op.create_index(
        "idx_suggestion_identity_status", "engagement_suggestions", ["identity_id", "status"]
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("ts", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column(
            "actor",
            sa.Enum("user", "system", "agent", name="audit_actor_enum"),
            nullable=False,
        ),
        sa.Column("action_type", sa.String(128), nullable=False),
        sa.Column("identity_id", sa.BigInteger, nullable=True),
        sa.Column("entity_type", sa.String(64), nullable=True),
        sa.Column("entity_id", sa.BigInteger, nullable=True),
        sa.Column("request_json", sa.JSON, nullable=True),
        sa.Column("response_json", sa.JSON, nullable=True),
        sa.Column("result", sa.Enum("ok", "error", name="audit_result_enum"), nullable=False),
        sa.Column("error_detail", sa.Text, nullable=True),
    )
    op.create_index("idx_audit_ts", "audit_log", ["ts"])
    op.create_index("idx_audit_action", "audit_log", ["action_type"])
    op.create_index("idx_audit_identity", "audit_log", ["identity_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("engagement_suggestions")
    op.drop_table("personas")
    op.drop_table("content_items")
    op.drop_table("oauth_handshakes")
    op.drop_table("sessions")
    op.drop_table("identities")

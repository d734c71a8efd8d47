"""refresh sessions and session audit events

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "refresh_sessions",
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("encrypted_refresh_token", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("session_id"),
    )
    op.create_index("ix_refresh_sessions_user_id", "refresh_sessions", ["user_id"])
    op.create_index("idx_refresh_sessions_created_at", "refresh_sessions", ["created_at"])
    op.create_index("idx_refresh_sessions_user_revoked", "refresh_sessions", ["user_id", "revoked"])

    op.create_table(
        "session_audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=True),
        sa.Column("target_id", sa.String(length=128), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_session_audit_events_id", "session_audit_events", ["id"])
    op.create_index("ix_session_audit_events_action", "session_audit_events", ["action"])
    op.create_index("ix_session_audit_events_target_type", "session_audit_events", ["target_type"])
    op.create_index("ix_session_audit_events_target_id", "session_audit_events", ["target_id"])
    op.create_index("idx_session_audit_events_created_at", "session_audit_events", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_session_audit_events_created_at", table_name="session_audit_events")
    op.drop_index("ix_session_audit_events_target_id", table_name="session_audit_events")
    op.drop_index("ix_session_audit_events_target_type", table_name="session_audit_events")
    op.drop_index("ix_session_audit_events_action", table_name="session_audit_events")
    op.drop_index("ix_session_audit_events_id", table_name="session_audit_events")
    op.drop_table("session_audit_events")

    op.drop_index("idx_refresh_sessions_user_revoked", table_name="refresh_sessions")
    op.drop_index("idx_refresh_sessions_created_at", table_name="refresh_sessions")
    op.drop_index("ix_refresh_sessions_user_id", table_name="refresh_sessions")
    op.drop_table("refresh_sessions")

"""create swipe session tables

Revision ID: 4a7c1e2b9d30
Revises:
Create Date: 2026-10-17 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '4a7c1e2b9d30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade():
    op.create_table(
        "sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(length=6), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="waiting"),
        sa.Column("media_type", sa.String(length=10), nullable=False, server_default="both"),
        sa.Column("host_participant_id", sa.Uuid(), nullable=True),
        sa.Column("preferences", JSONType, nullable=False),
        sa.Column("winner_item_key", sa.String(length=64), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timed_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("timer_end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_candidate_keys", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('waiting','questions','swiping','voting','completed','no_match')",
            name="ck_sessions_status",
        ),
        sa.CheckConstraint("media_type IN ('movies','shows','both')", name="ck_sessions_media_type"),
        sa.CheckConstraint(
            "winner_item_key IS NULL OR status = 'completed'",
            name="ck_sessions_winner_completed",
        ),
    )
    op.create_index("ix_sessions_code", "sessions", ["code"])
    op.create_index("ix_sessions_code_status", "sessions", ["code", "status"])

    op.create_table(
        "session_participants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Uuid(),
            sa.ForeignKey("sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auth_token", sa.String(length=255), nullable=True),
        sa.Column("preferences", JSONType, nullable=True),
        sa.Column("questions_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_session_participants_session_id", "session_participants", ["session_id"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("session_id", sa.Uuid(), sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "participant_id",
            sa.Uuid(),
            sa.ForeignKey("session_participants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_key", sa.String(length=64), nullable=False),
        sa.Column("liked", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("session_id", "participant_id", "item_key", name="uq_votes_session_participant_item"),
    )
    op.create_index("ix_votes_session_id", "votes", ["session_id"])
    op.create_index("ix_votes_participant_id", "votes", ["participant_id"])
    op.create_index("ix_votes_session_item_liked", "votes", ["session_id", "item_key", "liked"])

    op.create_table(
        "final_votes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("session_id", sa.Uuid(), sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "participant_id",
            sa.Uuid(),
            sa.ForeignKey("session_participants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_key", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("session_id", "participant_id", name="uq_final_votes_session_participant"),
    )
    op.create_index("ix_final_votes_session_id", "final_votes", ["session_id"])

    op.create_table(
        "media_items_cache",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("library_keys", sa.String(length=500), nullable=False),
        sa.Column("media_type", sa.String(length=10), nullable=False),
        sa.Column("items", JSONType, nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("library_keys", "media_type", name="uq_media_items_cache_keys_type"),
    )

    op.create_table(
        "session_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("session_id", sa.Uuid(), nullable=False, unique=True),
        sa.Column("session_code", sa.String(length=6), nullable=False),
        sa.Column("participants", JSONType, nullable=False),
        sa.Column("winner_item_key", sa.String(length=64), nullable=True),
        sa.Column("outcome", sa.String(length=20), nullable=False),
        sa.Column("media_type", sa.String(length=10), nullable=False),
        sa.Column("was_timed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_session_history_completed_at", "session_history", ["completed_at"])


def downgrade():
    op.drop_index("ix_session_history_completed_at", table_name="session_history")
    op.drop_table("session_history")
    op.drop_table("media_items_cache")
    op.drop_index("ix_final_votes_session_id", table_name="final_votes")
    op.drop_table("final_votes")
    op.drop_index("ix_votes_session_item_liked", table_name="votes")
    op.drop_index("ix_votes_participant_id", table_name="votes")
    op.drop_index("ix_votes_session_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_session_participants_session_id", table_name="session_participants")
    op.drop_table("session_participants")
    op.drop_index("ix_sessions_code_status", table_name="sessions")
    op.drop_index("ix_sessions_code", table_name="sessions")
    op.drop_table("sessions")

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wtw.db.base_class import Base

SESSION_STATUSES = ("waiting", "questions", "swiping", "voting", "completed", "no_match")
TERMINAL_STATUSES = frozenset({"completed", "no_match"})
MEDIA_TYPES = ("movies", "shows", "both")

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SwipeSession(Base):
    __tablename__ = "sessions"

    # ─────────────────────────────────────────────
    # Identity
    # ─────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    # Unique among active sessions only; finished sessions may share a code.
    code: Mapped[str] = mapped_column(sa.String(6), nullable=False, index=True)

    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default="waiting", default="waiting")
    media_type: Mapped[str] = mapped_column(sa.String(10), nullable=False, server_default="both", default="both")

    host_participant_id: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid, nullable=True)

    # Free-form bag (e.g. selectedCollections); merged key by key.
    preferences: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    # ─────────────────────────────────────────────
    # Outcome (append-only once set)
    # ─────────────────────────────────────────────
    winner_item_key: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    # ─────────────────────────────────────────────
    # Timed mode
    # ─────────────────────────────────────────────
    timed_duration_minutes: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    timer_end_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    final_candidate_keys: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_now_utc,
        server_default=sa.func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        server_default=sa.func.now(),
        nullable=False,
    )

    participants = relationship(
        "SessionParticipant",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SessionParticipant.created_at",
    )

    @property
    def is_timed(self) -> bool:
        return bool(self.timed_duration_minutes)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('waiting','questions','swiping','voting','completed','no_match')",
            name="ck_sessions_status",
        ),
        sa.CheckConstraint("media_type IN ('movies','shows','both')", name="ck_sessions_media_type"),
        sa.CheckConstraint(
            "winner_item_key IS NULL OR status = 'completed'",
            name="ck_sessions_winner_completed",
        ),
        sa.Index("ix_sessions_code_status", "code", "status"),
    )

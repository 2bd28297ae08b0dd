from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from wtw.db.base_class import Base
from wtw.models.swipe_session import _now_utc


class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    session_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, sa.ForeignKey("session_participants.id", ondelete="CASCADE"), nullable=False, index=True)
    item_key: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    liked: Mapped[bool] = mapped_column(sa.Boolean, nullable=False)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, server_default=sa.func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, server_default=sa.func.now(), nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("session_id", "participant_id", "item_key", name="uq_votes_session_participant_item"),
        sa.Index("ix_votes_session_item_liked", "session_id", "item_key", "liked"),
    )

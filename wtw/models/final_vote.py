from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from wtw.db.base_class import Base
from wtw.models.swipe_session import _now_utc


class FinalVote(Base):
    __tablename__ = "final_votes"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    session_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, sa.ForeignKey("session_participants.id", ondelete="CASCADE"), nullable=False)
    item_key: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, server_default=sa.func.now(), nullable=False)

    __table_args__ = (
        # one final pick per participant, never replaced
        sa.UniqueConstraint("session_id", "participant_id", name="uq_final_votes_session_participant"),
    )

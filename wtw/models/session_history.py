from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from wtw.db.base_class import Base
from wtw.models.swipe_session import JSONType, _now_utc


class SessionHistory(Base):
    __tablename__ = "session_history"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    # not a foreign key: history outlives the session rows
    session_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, unique=True)
    session_code: Mapped[str] = mapped_column(sa.String(6), nullable=False)

    participants: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    winner_item_key: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    outcome: Mapped[str] = mapped_column(sa.String(20), nullable=False)  # completed|no_match
    media_type: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    was_timed: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())

    completed_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, server_default=sa.func.now(), nullable=False)

    __table_args__ = (
        sa.Index("ix_session_history_completed_at", "completed_at"),
    )

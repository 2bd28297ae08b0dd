from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wtw.db.base_class import Base
from wtw.models.swipe_session import JSONType, _now_utc


class SessionParticipant(Base):
    __tablename__ = "session_participants"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    session_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        sa.ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    display_name: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    is_guest: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())

    # Upstream (Plex) token, passed through to the catalog and never interpreted here.
    auth_token: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)

    preferences: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    questions_completed: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
        server_default=sa.false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_now_utc,
        server_default=sa.func.now(),
        nullable=False,
    )

    session = relationship("SwipeSession", back_populates="participants")

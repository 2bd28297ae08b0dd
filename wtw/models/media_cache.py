from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from wtw.db.base_class import Base
from wtw.models.swipe_session import JSONType, _now_utc


class MediaItemsCache(Base):
    __tablename__ = "media_items_cache"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    # comma-joined, sorted library keys
    library_keys: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    media_type: Mapped[str] = mapped_column(sa.String(10), nullable=False)

    items: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    item_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, server_default=sa.func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, server_default=sa.func.now(), nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("library_keys", "media_type", name="uq_media_items_cache_keys_type"),
    )

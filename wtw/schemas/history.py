from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from wtw.schemas.sessions import UtcDatetime


class SessionHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    session_code: str
    participants: list[str] = Field(default_factory=list)
    winner_item_key: str | None
    outcome: str
    media_type: str
    was_timed: bool
    completed_at: UtcDatetime


class SessionHistoryPage(BaseModel):
    items: list[SessionHistoryOut]
    total: int
    limit: int
    offset: int


class CatalogRefreshRequest(BaseModel):
    # defaults to PLEX_LIBRARY_KEYS
    library_keys: list[str] | None = None


class CatalogRefreshOut(BaseModel):
    refresh_id: str
    library_keys: str
    counts: dict[str, int]
    started_at: datetime
    finished_at: datetime | None

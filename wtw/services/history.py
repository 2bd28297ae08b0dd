from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from wtw.core.errors import ValidationError
from wtw.models.session_history import SessionHistory
from wtw.services import store

MAX_PAGE_SIZE = 100


async def list_session_history(
    db: AsyncSession,
    *,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[SessionHistory], int]:
    """Finished sessions, newest first, with the total count for paging."""
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")
    return await store.list_history(db, limit=limit, offset=offset)

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from wtw.db.session import get_db_session
from wtw.services.catalog import MediaCatalog, default_catalog
from wtw.services.events import EventBus, event_bus


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db_session():
        yield session


def get_event_bus() -> EventBus:
    return event_bus


def get_media_catalog() -> MediaCatalog:
    return default_catalog()

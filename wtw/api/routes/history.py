from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from wtw.api.deps import get_db, get_media_catalog
from wtw.api.http_errors import session_error, value_error
from wtw.core.config import settings
from wtw.core.errors import SessionError
from wtw.schemas.history import (
    CatalogRefreshOut,
    CatalogRefreshRequest,
    SessionHistoryOut,
    SessionHistoryPage,
)
from wtw.services.catalog import MediaCatalog, refresh_media_cache
from wtw.services.history import list_session_history

router = APIRouter(tags=["history"])


@router.get("/history", response_model=SessionHistoryPage)
async def history_route(
    limit: int = Query(default=20),
    offset: int = Query(default=0),
    db: AsyncSession = Depends(get_db),
):
    try:
        rows, total = await list_session_history(db, limit=limit, offset=offset)
        return SessionHistoryPage(
            items=[SessionHistoryOut.model_validate(r) for r in rows],
            total=total,
            limit=limit,
            offset=offset,
        )
    except SessionError as e:
        raise session_error(e) from e


@router.post("/catalog/refresh", response_model=CatalogRefreshOut)
async def catalog_refresh_route(
    payload: CatalogRefreshRequest | None = None,
    db: AsyncSession = Depends(get_db),
    catalog: MediaCatalog = Depends(get_media_catalog),
):
    library_keys = (payload.library_keys if payload else None) or settings.plex_library_key_list()
    try:
        if not library_keys:
            raise ValueError("No Plex libraries configured")
        result = await refresh_media_cache(db, catalog, library_keys)
        await db.commit()
    except SessionError as e:
        raise session_error(e) from e
    except ValueError as e:
        raise value_error(e) from e

    return CatalogRefreshOut(
        refresh_id=result.refresh_id,
        library_keys=result.library_keys,
        counts=result.counts,
        started_at=result.started_at,
        finished_at=result.finished_at,
    )

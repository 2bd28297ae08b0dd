from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from wtw.core.config import settings
from wtw.schemas.media import MediaItem
from wtw.schemas.preferences import AggregatedPreferences
from wtw.services import store
from wtw.services.catalog import CachedMediaCatalog, MediaCatalog
from wtw.services.ordering import order_candidates, remove_watched, session_seed
from wtw.services.preferences import aggregate_preferences, apply_exclusions, apply_label_restrictions

logger = logging.getLogger(__name__)


@dataclass
class CandidateList:
    items: list[MediaItem] = field(default_factory=list)
    order_mode: str = "random"


def _collection_keys(session_preferences: dict | None) -> list[str]:
    raw = (session_preferences or {}).get("selectedCollections") or []
    keys: list[str] = []
    for c in raw if isinstance(raw, list) else []:
        key = c.get("key") if isinstance(c, dict) else c
        if key is not None and str(key) not in keys:
            keys.append(str(key))
    return keys


async def session_preferences(db: AsyncSession, *, session_id: uuid.UUID) -> AggregatedPreferences:
    await store.get_session(db, session_id)
    participants = await store.list_participants(db, session_id)
    return aggregate_preferences(p.preferences for p in participants)


async def build_candidates(
    db: AsyncSession,
    catalog: MediaCatalog,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    current_year: int | None = None,
    shuffle_seed: int | None = None,
) -> CandidateList:
    """The swipe deck for one participant, filtered and ordered for the whole group."""
    s = await store.get_session(db, session_id)
    participant = await store.get_session_participant(db, s.id, participant_id)
    participants = await store.list_participants(db, s.id)
    prefs = aggregate_preferences(p.preferences for p in participants)

    library_keys = settings.plex_library_key_list()
    cached = CachedMediaCatalog(db, catalog)

    async with store.storage_guard(db):
        items = await cached.get_items(library_keys, s.media_type)
        await db.commit()
    total = len(items)

    collections = _collection_keys(s.preferences)
    if collections:
        allowed = await cached.get_collection_item_keys(collections)
        items = [it for it in items if it.item_key in allowed]

    if settings.enable_label_restrictions:
        items = apply_label_restrictions(
            items,
            mode=settings.label_restriction_mode,
            labels=settings.restricted_label_list(),
        )

    items = apply_exclusions(items, prefs, current_year=current_year)

    seed = session_seed(s.id, s.created_at)
    ordered = order_candidates(
        items,
        prefs,
        seed,
        settings.suggestion_order,
        current_year=current_year,
        shuffle_seed=shuffle_seed,
    )

    if participant.auth_token:
        watched = await cached.get_watched_keys(participant.auth_token, library_keys)
        ordered = remove_watched(ordered, watched)

    logger.info(
        "Built %d candidates (of %d cached) for participant %s in session %s",
        len(ordered),
        total,
        participant.id,
        s.id,
    )
    return CandidateList(items=ordered, order_mode=settings.suggestion_order)

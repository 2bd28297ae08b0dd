"""Media catalog: Plex upstream plus a read-through snapshot in ``media_items_cache``."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wtw.core.config import settings
from wtw.models.media_cache import MediaItemsCache
from wtw.schemas.media import MediaItem

logger = logging.getLogger(__name__)

# Plex library section type -> session media type
_SECTION_MEDIA_TYPES = {"movie": "movies", "show": "shows"}
_DETAIL_BATCH_SIZE = 50
_AUDIO_STREAM_TYPE = 2

_LANGUAGE_CODES = {
    "eng": "English", "en": "English",
    "fre": "French", "fra": "French", "fr": "French",
    "ger": "German", "deu": "German", "de": "German",
    "spa": "Spanish", "es": "Spanish",
    "ita": "Italian", "it": "Italian",
    "jpn": "Japanese", "ja": "Japanese",
    "kor": "Korean", "ko": "Korean",
    "chi": "Chinese", "zho": "Chinese", "zh": "Chinese",
    "rus": "Russian", "ru": "Russian",
    "por": "Portuguese", "pt": "Portuguese",
    "hin": "Hindi", "hi": "Hindi",
    "ara": "Arabic", "ar": "Arabic",
    "dut": "Dutch", "nld": "Dutch", "nl": "Dutch",
    "swe": "Swedish", "sv": "Swedish",
    "nor": "Norwegian", "nob": "Norwegian", "nno": "Norwegian", "no": "Norwegian",
    "dan": "Danish", "da": "Danish",
    "fin": "Finnish", "fi": "Finnish",
    "pol": "Polish", "pl": "Polish",
    "tur": "Turkish", "tr": "Turkish",
    "tha": "Thai", "th": "Thai",
    "vie": "Vietnamese", "vi": "Vietnamese",
    "ind": "Indonesian", "id": "Indonesian",
    "ces": "Czech", "cze": "Czech", "cs": "Czech",
    "hun": "Hungarian", "hu": "Hungarian",
    "ron": "Romanian", "rum": "Romanian", "ro": "Romanian",
    "ukr": "Ukrainian", "uk": "Ukrainian",
    "heb": "Hebrew", "he": "Hebrew",
    "ell": "Greek", "gre": "Greek", "el": "Greek",
}
_UNKNOWN_LANGUAGES = {"unknown", "und", "undetermined"}


class MediaCatalog(Protocol):
    async def get_items(self, library_keys: Sequence[str], media_type: str) -> list[MediaItem]: ...

    async def get_watched_keys(self, auth_token: str, library_keys: Sequence[str]) -> set[str]: ...

    async def get_collection_item_keys(self, collection_keys: Sequence[str]) -> set[str]: ...


def cache_key(library_keys: Iterable[str]) -> str:
    return ",".join(sorted({str(k) for k in library_keys}))


def normalize_language_name(value: str | None) -> str | None:
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed or trimmed.lower() in _UNKNOWN_LANGUAGES:
        return None
    mapped = _LANGUAGE_CODES.get(trimmed.lower())
    if mapped:
        return mapped
    # anything longer than a code is already a language name
    if len(trimmed) > 3:
        return trimmed[:1].upper() + trimmed[1:].lower()
    return None


def languages_from_media(media: list[dict[str, Any]] | None) -> list[str]:
    out: list[str] = []
    for m in media or []:
        for part in m.get("Part") or []:
            for stream in part.get("Stream") or []:
                if stream.get("streamType") != _AUDIO_STREAM_TYPE:
                    continue
                lang = normalize_language_name(stream.get("languageCode"))
                if not lang and stream.get("languageTag"):
                    lang = normalize_language_name(str(stream["languageTag"]).split("-")[0])
                if not lang:
                    lang = normalize_language_name(stream.get("language"))
                if lang and lang not in out:
                    out.append(lang)
    return out


def _tags(meta: dict[str, Any], key: str) -> list[str]:
    out: list[str] = []
    for row in meta.get(key) or []:
        tag = row.get("tag") if isinstance(row, dict) else None
        if isinstance(tag, str) and tag.strip() and tag not in out:
            out.append(tag.strip())
    return out


def item_from_plex(
    meta: dict[str, Any],
    *,
    detail: dict[str, Any] | None = None,
    languages: list[str] | None = None,
) -> MediaItem:
    d = detail or meta
    return MediaItem(
        item_key=str(meta.get("ratingKey")),
        title=meta.get("title") or "",
        year=meta.get("year"),
        type="show" if meta.get("type") == "show" else "movie",
        genres=_tags(d, "Genre"),
        languages=languages if languages is not None else languages_from_media(d.get("Media")),
        labels=_tags(d, "Label"),
        summary=meta.get("summary"),
        thumb=meta.get("thumb"),
        duration_ms=meta.get("duration"),
        rating=meta.get("audienceRating") or meta.get("rating"),
        content_rating=meta.get("contentRating"),
    )


class PlexMediaCatalog:
    def __init__(
        self,
        base_url: str | None,
        token: str | None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.token = token
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.token)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url or "",
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )

    async def _container(
        self,
        client: httpx.AsyncClient,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        query = {"X-Plex-Token": token or self.token, **(params or {})}
        r = await client.get(path, params=query)
        r.raise_for_status()
        return r.json().get("MediaContainer") or {}

    async def _section_types(self, client: httpx.AsyncClient) -> dict[str, str]:
        container = await self._container(client, "/library/sections")
        return {str(d.get("key")): d.get("type") for d in container.get("Directory") or []}

    async def _movie_details(self, client: httpx.AsyncClient, metas: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
        details: dict[str, dict[str, Any]] = {}
        for i in range(0, len(metas), _DETAIL_BATCH_SIZE):
            batch = metas[i : i + _DETAIL_BATCH_SIZE]
            keys = ",".join(str(m.get("ratingKey")) for m in batch)
            try:
                container = await self._container(client, f"/library/metadata/{keys}")
            except httpx.HTTPError as e:
                logger.warning("Plex detail batch failed (%s): %s", keys, e)
                continue
            for row in container.get("Metadata") or []:
                details[str(row.get("ratingKey"))] = row
        return details

    async def _show_languages(self, client: httpx.AsyncClient, rating_key: str) -> list[str]:
        # shows carry no streams; sample the first episode of the first season
        try:
            seasons = (await self._container(client, f"/library/metadata/{rating_key}/children")).get("Metadata") or []
            if not seasons:
                return []
            episodes = (
                await self._container(client, f"/library/metadata/{seasons[0].get('ratingKey')}/children")
            ).get("Metadata") or []
            if not episodes:
                return []
            episode = (
                await self._container(client, f"/library/metadata/{episodes[0].get('ratingKey')}")
            ).get("Metadata") or []
        except httpx.HTTPError as e:
            logger.warning("Plex show language lookup failed for %s: %s", rating_key, e)
            return []
        return languages_from_media(episode[0].get("Media")) if episode else []

    async def get_items(self, library_keys: Sequence[str], media_type: str) -> list[MediaItem]:
        if not self.configured or not library_keys:
            return []

        items: list[MediaItem] = []
        async with self._client() as client:
            section_types = await self._section_types(client)
            for key in sorted({str(k) for k in library_keys}):
                section_media = _SECTION_MEDIA_TYPES.get(section_types.get(key) or "")
                if section_media is None:
                    logger.warning("Plex library %s is not a movie or show library, skipping", key)
                    continue
                if media_type != "both" and section_media != media_type:
                    continue

                container = await self._container(client, f"/library/sections/{key}/all", params={"includeGuids": 1})
                metas = container.get("Metadata") or []
                logger.info("Fetched %d %s from Plex library %s", len(metas), section_media, key)

                if section_media == "movies":
                    details = await self._movie_details(client, metas)
                    items.extend(item_from_plex(m, detail=details.get(str(m.get("ratingKey")))) for m in metas)
                else:
                    for m in metas:
                        langs = await self._show_languages(client, str(m.get("ratingKey")))
                        items.append(item_from_plex(m, languages=langs))
        return items

    async def get_watched_keys(self, auth_token: str, library_keys: Sequence[str]) -> set[str]:
        if not self.base_url or not auth_token:
            return set()

        watched: set[str] = set()
        async with self._client() as client:
            for key in sorted({str(k) for k in library_keys}):
                try:
                    container = await self._container(
                        client,
                        f"/library/sections/{key}/all",
                        token=auth_token,
                        params={"unwatched": 0},
                    )
                except httpx.HTTPError as e:
                    logger.warning("Plex watched lookup failed for library %s: %s", key, e)
                    continue
                for row in container.get("Metadata") or []:
                    if (row.get("viewCount") or 0) > 0:
                        watched.add(str(row.get("ratingKey")))
        logger.info("Found %d watched items for participant", len(watched))
        return watched

    async def get_collection_item_keys(self, collection_keys: Sequence[str]) -> set[str]:
        if not self.configured or not collection_keys:
            return set()

        keys: set[str] = set()
        async with self._client() as client:
            for ck in collection_keys:
                try:
                    container = await self._container(client, f"/library/collections/{ck}/children")
                except httpx.HTTPError as e:
                    logger.warning("Plex collection lookup failed for %s: %s", ck, e)
                    continue
                keys.update(str(row.get("ratingKey")) for row in container.get("Metadata") or [])
        return keys


def default_catalog() -> PlexMediaCatalog:
    return PlexMediaCatalog(settings.plex_url, settings.plex_token, timeout=settings.plex_timeout_seconds)


async def _load_cached(db: AsyncSession, key: str, media_type: str) -> MediaItemsCache | None:
    q = select(MediaItemsCache).where(
        MediaItemsCache.library_keys == key,
        MediaItemsCache.media_type == media_type,
    )
    return (await db.execute(q)).scalar_one_or_none()


async def _store(db: AsyncSession, key: str, media_type: str, items: list[MediaItem]) -> MediaItemsCache:
    row = await _load_cached(db, key, media_type)
    if row is None:
        row = MediaItemsCache(library_keys=key, media_type=media_type)
        db.add(row)
    row.items = [it.model_dump(mode="json") for it in items]
    row.item_count = len(items)
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return row


class CachedMediaCatalog:
    """Serves items from ``media_items_cache``, filling it from upstream on a miss."""

    def __init__(self, db: AsyncSession, upstream: MediaCatalog) -> None:
        self.db = db
        self.upstream = upstream

    async def get_items(self, library_keys: Sequence[str], media_type: str) -> list[MediaItem]:
        key = cache_key(library_keys)
        row = await _load_cached(self.db, key, media_type)
        if row is not None:
            return [MediaItem.model_validate(raw) for raw in row.items or []]

        items = await self.upstream.get_items(library_keys, media_type)
        if items:
            await _store(self.db, key, media_type, items)
            logger.info("Cached %d %s items for libraries %s", len(items), media_type, key)
        return items

    async def get_watched_keys(self, auth_token: str, library_keys: Sequence[str]) -> set[str]:
        return await self.upstream.get_watched_keys(auth_token, library_keys)

    async def get_collection_item_keys(self, collection_keys: Sequence[str]) -> set[str]:
        return await self.upstream.get_collection_item_keys(collection_keys)


@dataclass
class CacheRefreshResult:
    refresh_id: str
    library_keys: str
    counts: dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None


async def refresh_media_cache(
    db: AsyncSession,
    upstream: MediaCatalog,
    library_keys: Sequence[str],
) -> CacheRefreshResult:
    """Rebuild the cached snapshot for ``library_keys``; the caller commits."""
    key = cache_key(library_keys)
    result = CacheRefreshResult(refresh_id=uuid.uuid4().hex, library_keys=key)
    logger.info("Cache refresh %s started for libraries %s", result.refresh_id, key)

    movies = await upstream.get_items(library_keys, "movies")
    shows = await upstream.get_items(library_keys, "shows")

    for media_type, items in (("movies", movies), ("shows", shows), ("both", [*movies, *shows])):
        await _store(db, key, media_type, items)
        result.counts[media_type] = len(items)

    result.finished_at = datetime.now(timezone.utc)
    logger.info("Cache refresh %s finished: %s", result.refresh_id, result.counts)
    return result

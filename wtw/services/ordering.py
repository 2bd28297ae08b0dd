from __future__ import annotations

import hashlib
import random
import time
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from itertools import groupby
from typing import Literal

from wtw.schemas.media import MediaItem
from wtw.schemas.preferences import AggregatedPreferences
from wtw.services.preferences import eras_match, genres_match, languages_match
from wtw.services.store import as_utc

OrderMode = Literal["random", "fixed"]

GENRE_SCORE = 100
LANGUAGE_SCORE = 75
ERA_SCORE = 50


def _stable_seed(value: str) -> int:
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big")


def session_seed(session_id: uuid.UUID | str, created_at: datetime) -> int:
    """Seed every request for the same session derives identically, without storing it."""
    created = as_utc(created_at)
    return _stable_seed(f"{session_id}:{int(created.timestamp())}")


def score_item(item: MediaItem, prefs: AggregatedPreferences, *, current_year: int | None = None) -> int:
    score = 0
    if genres_match(item.genres, prefs.genres):
        score += GENRE_SCORE
    if eras_match(item.year, prefs.eras, current_year=current_year):
        score += ERA_SCORE
    if languages_match(item.languages, prefs.languages):
        score += LANGUAGE_SCORE
    return score


def order_candidates(
    items: Sequence[MediaItem],
    prefs: AggregatedPreferences,
    seed: int,
    order_mode: OrderMode = "random",
    *,
    current_year: int | None = None,
    shuffle_seed: int | None = None,
) -> list[MediaItem]:
    """Order the deck for one participant.

    ``fixed`` gives every participant of a session the same deck: items are
    grouped by score and each group shuffled with a seed derived from the
    session, so the result only changes when the catalog or preferences do.

    ``random`` shuffles with the wall clock (``shuffle_seed`` pins it) and
    then stable-sorts by score, so matching items still come first.
    """
    scored = [(score_item(it, prefs, current_year=current_year), it) for it in items]

    if order_mode == "fixed":
        scored.sort(key=lambda pair: (-pair[0], pair[1].item_key))
        out: list[MediaItem] = []
        for score, group in groupby(scored, key=lambda pair: pair[0]):
            bucket = [it for _, it in group]
            random.Random(seed + score).shuffle(bucket)
            out.extend(bucket)
        return out

    rng = random.Random(shuffle_seed if shuffle_seed is not None else time.time_ns())
    rng.shuffle(scored)
    if prefs.has_preferences:
        scored.sort(key=lambda pair: -pair[0])
    return [it for _, it in scored]


def remove_watched(items: Iterable[MediaItem], watched_keys: Iterable[str]) -> list[MediaItem]:
    watched = set(watched_keys)
    if not watched:
        return list(items)
    return [it for it in items if it.item_key not in watched]

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from wtw.schemas.media import MediaItem
from wtw.schemas.preferences import AggregatedPreferences, ParticipantPreferences

# UI genre labels -> names the catalog may use for the same thing
GENRE_ALIASES: dict[str, list[str]] = {
    "Sci-Fi": ["Science Fiction", "Sci-Fi", "SciFi", "SF"],
    "Science Fiction": ["Science Fiction", "Sci-Fi", "SciFi", "SF"],
    "Rom-Com": ["Romantic Comedy", "Romance", "Comedy"],
    "Romantic Comedy": ["Romantic Comedy", "Romance"],
    "Action": ["Action", "Action/Adventure"],
    "Adventure": ["Adventure", "Action/Adventure"],
}

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_genre(genre: str) -> str:
    return _NON_ALNUM_RE.sub("", (genre or "").lower())


def normalize_language(lang: str) -> str:
    return (lang or "").strip().lower()


def _current_year() -> int:
    return datetime.now(timezone.utc).year


def genres_match(item_genres: Sequence[str], wanted: Sequence[str]) -> bool:
    """True if any item genre equals a wanted genre or one of its aliases."""
    if not wanted or not item_genres:
        return False
    normalized = {normalize_genre(g) for g in item_genres}
    for genre in wanted:
        if normalize_genre(genre) in normalized:
            return True
        if any(normalize_genre(alias) in normalized for alias in GENRE_ALIASES.get(genre, [])):
            return True
    return False


def languages_match(item_languages: Sequence[str], wanted: Sequence[str]) -> bool:
    if not wanted or not item_languages:
        return False
    normalized = {normalize_language(lang) for lang in item_languages}
    return any(normalize_language(lang) in normalized for lang in wanted)


def matches_era(year: int, era: str, *, current_year: int | None = None) -> bool:
    if current_year is None:
        current_year = _current_year()
    if era == "recent":
        return year >= current_year - 2
    if era == "2020s":
        return year >= 2020
    if era == "2010s":
        return 2010 <= year < 2020
    if era == "2000s":
        return 2000 <= year < 2010
    if era == "90s":
        return 1990 <= year < 2000
    if era == "classic":
        return year < 1990
    return False


def eras_match(year: int | None, wanted: Sequence[str], *, current_year: int | None = None) -> bool:
    if not year or not wanted:
        return False
    return any(matches_era(year, era, current_year=current_year) for era in wanted)


def parse_participant_preferences(raw: Mapping[str, Any] | None) -> ParticipantPreferences:
    return ParticipantPreferences.model_validate(raw or {})


def _union(values: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def aggregate_preferences(preferences: Iterable[Mapping[str, Any] | ParticipantPreferences | None]) -> AggregatedPreferences:
    """Combine every participant's answers into one filter/scoring set.

    Preferred facets are the union of what anybody asked for (soft scoring
    signals); exclusions are the union of what anybody excluded and remove
    items for the whole group.
    """
    parsed = [
        p if isinstance(p, ParticipantPreferences) else parse_participant_preferences(p)
        for p in preferences
    ]
    return AggregatedPreferences(
        genres=_union(g for p in parsed for g in p.genres),
        excluded_genres=_union(g for p in parsed for g in p.excluded_genres),
        eras=_union(e for p in parsed for e in p.eras),
        excluded_eras=_union(e for p in parsed for e in p.excluded_eras),
        languages=_union(lang for p in parsed for lang in p.languages),
        excluded_languages=_union(lang for p in parsed for lang in p.excluded_languages),
    )


def merge_preferences(existing: Mapping[str, Any] | None, incoming: Mapping[str, Any] | None) -> dict[str, Any]:
    """Key-level merge of a session's preference bag; the incoming value wins per key."""
    merged = dict(existing or {})
    merged.update(incoming or {})
    return merged


def is_excluded(item: MediaItem, prefs: AggregatedPreferences, *, current_year: int | None = None) -> bool:
    if genres_match(item.genres, prefs.excluded_genres):
        return True
    if eras_match(item.year, prefs.excluded_eras, current_year=current_year):
        return True
    if languages_match(item.languages, prefs.excluded_languages):
        return True
    return False


def apply_exclusions(
    items: Sequence[MediaItem],
    prefs: AggregatedPreferences,
    *,
    current_year: int | None = None,
) -> list[MediaItem]:
    if not prefs.has_exclusions:
        return list(items)
    return [it for it in items if not is_excluded(it, prefs, current_year=current_year)]


def apply_label_restrictions(items: Sequence[MediaItem], *, mode: str, labels: Sequence[str]) -> list[MediaItem]:
    if not labels:
        return list(items)
    wanted = set(labels)
    if mode == "include":
        return [it for it in items if wanted.intersection(it.labels)]
    return [it for it in items if not wanted.intersection(it.labels)]

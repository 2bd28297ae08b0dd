from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

ERA_BUCKETS = ("recent", "2020s", "2010s", "2000s", "90s", "classic")


def _normalize_tags(v: list[str] | None) -> list[str]:
    cleaned: list[str] = []
    seen: set[str] = set()
    for s in v or []:
        s2 = (s or "").strip() if isinstance(s, str) else ""
        if not s2:
            continue
        s2 = s2[:60]
        key = s2.lower()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(s2)
    return cleaned


class ParticipantPreferences(BaseModel):
    """One participant's answers to the question flow.

    Stored as JSON with the camelCase keys clients send (``excludedGenres``
    and friends); unknown keys are kept so older clients round-trip cleanly.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    genres: list[str] = Field(default_factory=list)
    excluded_genres: list[str] = Field(default_factory=list, alias="excludedGenres")
    eras: list[str] = Field(default_factory=list)
    excluded_eras: list[str] = Field(default_factory=list, alias="excludedEras")
    languages: list[str] = Field(default_factory=list)
    excluded_languages: list[str] = Field(default_factory=list, alias="excludedLanguages")

    @field_validator(
        "genres",
        "excluded_genres",
        "eras",
        "excluded_eras",
        "languages",
        "excluded_languages",
        mode="before",
    )
    @classmethod
    def normalize_tags(cls, v: object) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            raise ValueError("must be a list of strings")
        return _normalize_tags(v)

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)


class AggregatedPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    genres: list[str] = Field(default_factory=list)
    excluded_genres: list[str] = Field(default_factory=list, alias="excludedGenres")
    eras: list[str] = Field(default_factory=list)
    excluded_eras: list[str] = Field(default_factory=list, alias="excludedEras")
    languages: list[str] = Field(default_factory=list)
    excluded_languages: list[str] = Field(default_factory=list, alias="excludedLanguages")

    @property
    def has_preferences(self) -> bool:
        return bool(self.genres or self.eras or self.languages)

    @property
    def has_exclusions(self) -> bool:
        return bool(self.excluded_genres or self.excluded_eras or self.excluded_languages)

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediaItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item_key: str
    title: str
    year: int | None = None
    type: Literal["movie", "show"] = "movie"
    genres: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    summary: str | None = None
    thumb: str | None = None
    duration_ms: int | None = None
    rating: float | None = None
    content_rating: str | None = None

    @field_validator("item_key", mode="before")
    @classmethod
    def coerce_item_key(cls, v: object) -> object:
        # Plex rating keys arrive as ints from some endpoints
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("year", mode="before")
    @classmethod
    def drop_zero_year(cls, v: object) -> object:
        if v in (0, "0", ""):
            return None
        return v

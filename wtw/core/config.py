import json
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator


def _split_list(raw: str | None) -> list[str]:
    raw = (raw or "").strip()
    if not raw:
        return []

    values: list[str]
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            values = [str(v) for v in parsed if isinstance(v, (str, int))]
        else:
            values = [raw]
    else:
        values = raw.split(",")

    normalized: list[str] = []
    seen: set[str] = set()
    for value in values:
        cleaned = value.strip().strip("\"'")
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        normalized.append(cleaned)
    return normalized


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = Field(default="local", alias="ENV")
    database_url: str = Field(alias="DATABASE_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")

    # ─────────────────────────────────────────────
    # Plex (media catalog)
    # ─────────────────────────────────────────────
    plex_url: str | None = Field(default=None, alias="PLEX_URL")
    plex_token: str | None = Field(default=None, alias="PLEX_TOKEN")
    plex_library_keys: str = Field(default="", alias="PLEX_LIBRARY_KEYS")
    plex_timeout_seconds: float = Field(default=30.0, alias="PLEX_TIMEOUT_SECONDS")

    # ─────────────────────────────────────────────
    # Session behaviour
    # ─────────────────────────────────────────────
    suggestion_order: Literal["random", "fixed"] = Field(default="random", alias="SUGGESTION_ORDER")
    enable_label_restrictions: bool = Field(default=False, alias="ENABLE_LABEL_RESTRICTIONS")
    label_restriction_mode: Literal["include", "exclude"] = Field(default="include", alias="LABEL_RESTRICTION_MODE")
    restricted_labels: str = Field(default="", alias="RESTRICTED_LABELS")
    session_code_attempts: int = Field(default=10, ge=1, le=100, alias="SESSION_CODE_ATTEMPTS")
    final_vote_candidate_limit: int = Field(default=6, ge=1, le=50, alias="FINAL_VOTE_CANDIDATE_LIMIT")
    event_queue_size: int = Field(default=256, ge=1, alias="EVENT_QUEUE_SIZE")

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        cleaned = value.strip()
        if cleaned.startswith("postgres://"):
            cleaned = f"postgresql://{cleaned[len('postgres://'):]}"
        if cleaned.startswith("postgresql://") and not cleaned.startswith("postgresql+"):
            cleaned = cleaned.replace("postgresql://", "postgresql+asyncpg://", 1)
        if cleaned.startswith("sqlite://") and not cleaned.startswith("sqlite+"):
            cleaned = cleaned.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return cleaned

    @field_validator("plex_url", mode="before")
    @classmethod
    def normalize_plex_url(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        cleaned = value.strip().rstrip("/")
        return cleaned or None

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        return value.strip().upper()

    @model_validator(mode="after")
    def validate_plex_settings(self) -> "Settings":
        if self.plex_token and not self.plex_url:
            raise ValueError("PLEX_TOKEN requires PLEX_URL")
        return self

    def cors_origin_list(self) -> list[str]:
        origins: list[str] = []
        for cleaned in _split_list(self.cors_origins):
            # CORS origins are scheme + host (+ optional port) with no path slash.
            if cleaned != "*" and cleaned.endswith("/"):
                cleaned = cleaned.rstrip("/")
            if cleaned not in origins:
                origins.append(cleaned)
        return origins

    def plex_library_key_list(self) -> list[str]:
        return sorted(_split_list(self.plex_library_keys))

    def restricted_label_list(self) -> list[str]:
        return _split_list(self.restricted_labels)

settings = Settings()

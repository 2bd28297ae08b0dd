from __future__ import annotations
from datetime import datetime, timezone
from typing import Annotated, Any
from uuid import UUID
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from wtw.schemas.media import MediaItem


def _ensure_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class CreateSessionRequest(BaseModel):
    media_type: str = "both"  # checked by create_session
    display_name: str = Field(min_length=1, max_length=120)
    is_guest: bool = True
    auth_token: str | None = Field(default=None, max_length=255)
    timed_duration_minutes: int | None = None

class JoinSessionRequest(BaseModel):
    display_name: str = Field(min_length=1, max_length=120)
    is_guest: bool = True
    auth_token: str | None = Field(default=None, max_length=255)

class UpdateSessionRequest(BaseModel):
    status: str | None = None
    preferences: dict[str, Any] | None = None

class UpdateParticipantRequest(BaseModel):
    display_name: str | None = Field(default=None, max_length=120)
    preferences: dict[str, Any] | None = None
    questions_completed: bool | None = None

class RestartSessionRequest(BaseModel):
    participant_id: UUID


class ParticipantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    display_name: str
    is_guest: bool
    preferences: dict[str, Any] | None = None
    questions_completed: bool
    created_at: UtcDatetime


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    status: str
    media_type: str
    host_participant_id: UUID | None
    preferences: dict[str, Any] = Field(default_factory=dict)
    winner_item_key: str | None
    timed_duration_minutes: int | None
    timer_end_at: UtcDatetime | None
    final_candidate_keys: list[str] | None = None
    completed_at: UtcDatetime | None
    created_at: UtcDatetime
    updated_at: UtcDatetime

class SessionStateResponse(SessionOut):
    participants: list[ParticipantOut] = Field(default_factory=list)

class CreateSessionResponse(BaseModel):
    session: SessionOut
    participant: ParticipantOut


class VoteRequest(BaseModel):
    participant_id: UUID
    item_key: str = Field(min_length=1, max_length=64)
    liked: bool

class VoteResultOut(BaseModel):
    match: bool
    winner_item_key: str | None = None

class VoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant_id: UUID
    item_key: str
    liked: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime

class ExhaustedRequest(BaseModel):
    participant_id: UUID
    candidate_count: int = Field(ge=0)

class ExhaustionOut(BaseModel):
    status: str
    no_match: bool
    waiting_for_participants: bool = False
    waiting_for_timer: bool = False


class LikeCountOut(BaseModel):
    item_key: str
    likes: int

class MatchesOut(BaseModel):
    status: str
    winner_item_key: str | None
    matches: list[str] = Field(default_factory=list)
    top_liked: list[LikeCountOut] = Field(default_factory=list)
    final_candidate_keys: list[str] | None = None

class FinalVoteRequest(BaseModel):
    participant_id: UUID
    item_key: str = Field(min_length=1, max_length=64)

class FinalVoteResultOut(BaseModel):
    all_voted: bool
    winner: str | None = None
    was_tie: bool = False
    tied_items: list[str] = Field(default_factory=list)

class FinalVoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant_id: UUID
    item_key: str
    created_at: UtcDatetime

class FinalVoteStatusOut(BaseModel):
    final_votes: list[FinalVoteOut]
    voted_count: int
    total_count: int
    all_voted: bool


class CandidatesOut(BaseModel):
    items: list[MediaItem]
    total: int
    order_mode: str


def participant_payload(p) -> dict[str, Any]:
    return ParticipantOut.model_validate(p).model_dump(mode="json")

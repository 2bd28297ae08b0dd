from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from wtw.core.config import settings
from wtw.core.errors import ConflictError, TransientStoreError, ValidationError
from wtw.models.participant import SessionParticipant
from wtw.models.swipe_session import MEDIA_TYPES, SESSION_STATUSES, SwipeSession
from wtw.schemas.preferences import ParticipantPreferences
from wtw.schemas.sessions import participant_payload
from wtw.services import store
from wtw.services.events import PARTICIPANT_JOINED, PARTICIPANT_UPDATED, SESSION_UPDATED, EventBus
from wtw.services.preferences import merge_preferences
from wtw.services.timed import needs_resolution, resolve_timed_session

logger = logging.getLogger(__name__)

# no 0/O or 1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6

_STATUS_RANK = {
    "waiting": 0,
    "questions": 1,
    "swiping": 2,
    "voting": 3,
    "completed": 4,
    "no_match": 4,
}
# statuses a client may request; voting/completed come from resolution only
_CLIENT_STATUSES = {"questions", "swiping", "no_match"}


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _clean_display_name(value: str | None) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("display_name is required")
    if len(name) > 120:
        raise ValidationError("display_name must be at most 120 characters")
    return name


def _parse_preferences(raw: dict[str, Any]) -> dict[str, Any]:
    try:
        return ParticipantPreferences.model_validate(raw).to_storage()
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid preferences: {e.errors()[0].get('msg', 'invalid value')}") from e


def _event_value(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return store.as_utc(value).isoformat()
    return value


async def _unused_code(db: AsyncSession) -> str:
    for _ in range(settings.session_code_attempts):
        code = generate_code()
        if not await store.active_code_exists(db, code):
            return code
    raise TransientStoreError("Could not allocate a session code, retry the request")


async def create_session(
    db: AsyncSession,
    *,
    media_type: str,
    host_display_name: str,
    is_guest: bool = True,
    auth_token: str | None = None,
    timed_duration_minutes: int | None = None,
) -> tuple[SwipeSession, SessionParticipant]:
    if media_type not in MEDIA_TYPES:
        raise ValidationError(f"media_type must be one of {', '.join(MEDIA_TYPES)}")
    name = _clean_display_name(host_display_name)
    if timed_duration_minutes is not None and timed_duration_minutes <= 0:
        raise ValidationError("timed_duration_minutes must be positive")

    async with store.storage_guard(db):
        code = await _unused_code(db)

        s = SwipeSession(
            code=code,
            status="waiting",
            media_type=media_type,
            preferences={},
            timed_duration_minutes=timed_duration_minutes,
        )
        db.add(s)
        await db.flush()

        host = SessionParticipant(
            session_id=s.id,
            display_name=name,
            is_guest=is_guest,
            auth_token=auth_token,
        )
        db.add(host)
        await db.flush()

        s.host_participant_id = host.id
        await db.commit()

    logger.info("Created session %s (%s, timed=%s)", s.code, s.media_type, s.is_timed)
    return s, host


async def get_session(db: AsyncSession, bus: EventBus, *, session_id: uuid.UUID) -> SwipeSession:
    """Current state; an expired timed session is resolved before it is returned."""
    s = await store.get_session(db, session_id)
    if needs_resolution(s):
        s = await resolve_timed_session(db, bus, session_id=s.id)
    return s


async def get_session_by_code(db: AsyncSession, bus: EventBus, *, code: str) -> SwipeSession:
    s = await store.find_session_by_code(db, code)
    if needs_resolution(s):
        s = await resolve_timed_session(db, bus, session_id=s.id)
    return s


async def get_participants(db: AsyncSession, *, session_id: uuid.UUID) -> list[SessionParticipant]:
    await store.get_session(db, session_id)
    return await store.list_participants(db, session_id)


async def join_session(
    db: AsyncSession,
    bus: EventBus,
    *,
    session_id: uuid.UUID,
    display_name: str,
    is_guest: bool = True,
    auth_token: str | None = None,
) -> SessionParticipant:
    name = _clean_display_name(display_name)

    async with store.storage_guard(db):
        s = await store.get_session(db, session_id, lock=True)
        if s.is_terminal:
            raise ConflictError("Session has already finished")

        p = SessionParticipant(
            session_id=s.id,
            display_name=name,
            is_guest=is_guest,
            auth_token=auth_token,
        )
        db.add(p)
        await db.flush()
        await db.commit()

    bus.publish(s.id, PARTICIPANT_JOINED, {"participant": participant_payload(p)})
    return p


async def update_session(
    db: AsyncSession,
    bus: EventBus,
    *,
    session_id: uuid.UUID,
    status: str | None = None,
    preferences: dict[str, Any] | None = None,
) -> SwipeSession:
    if status is not None and status not in SESSION_STATUSES:
        raise ValidationError(f"Unknown status: {status}")

    changed: dict[str, Any] = {}

    async with store.storage_guard(db):
        s = await store.get_session(db, session_id, lock=True)

        if status is not None and status != s.status:
            if status not in _CLIENT_STATUSES:
                raise ConflictError(f"Status {status} is set by the session itself")
            if s.is_terminal or _STATUS_RANK[status] < _STATUS_RANK[s.status]:
                raise ConflictError(f"Cannot move session from {s.status} to {status}")
            if status == "no_match" and s.status != "swiping":
                raise ConflictError("Only a swiping session can end without a match")
            if status == "no_match" and s.is_timed:
                raise ConflictError("Timed sessions end when the timer runs out")

            s.status = status
            changed["status"] = status

            if status == "swiping" and s.is_timed and s.timer_end_at is None:
                s.timer_end_at = store.now_utc() + timedelta(minutes=s.timed_duration_minutes)
                changed["timer_end_at"] = s.timer_end_at
            if status == "no_match":
                s.completed_at = store.now_utc()

        if preferences is not None:
            merged = merge_preferences(s.preferences, preferences)
            if merged != (s.preferences or {}):
                s.preferences = merged
                changed["preferences"] = merged

        if changed:
            await db.flush()
            if changed.get("status") == "no_match":
                await store.record_history(db, s)
        await db.commit()

    if changed:
        bus.publish(s.id, SESSION_UPDATED, {k: _event_value(v) for k, v in changed.items()})
    return s


async def update_participant(
    db: AsyncSession,
    bus: EventBus,
    *,
    participant_id: uuid.UUID,
    display_name: str | None = None,
    preferences: dict[str, Any] | None = None,
    questions_completed: bool | None = None,
) -> SessionParticipant:
    changed: dict[str, Any] = {}

    async with store.storage_guard(db):
        p = await store.get_participant(db, participant_id)

        if display_name is not None:
            name = _clean_display_name(display_name)
            if name != p.display_name:
                p.display_name = name
                changed["display_name"] = name

        if preferences is not None:
            # replaced wholesale; the client always sends the full answer set
            cleaned = _parse_preferences(preferences)
            if cleaned != p.preferences:
                p.preferences = cleaned
                changed["preferences"] = cleaned

        if questions_completed is not None and questions_completed != p.questions_completed:
            p.questions_completed = questions_completed
            changed["questions_completed"] = questions_completed

        await db.commit()

    if changed:
        bus.publish(p.session_id, PARTICIPANT_UPDATED, {"participantId": str(p.id), **changed})
    return p


async def restart_round(
    db: AsyncSession,
    bus: EventBus,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
) -> SwipeSession:
    """Host-only: send everyone back to the questions with a clean slate of votes."""
    async with store.storage_guard(db):
        s = await store.get_session(db, session_id, lock=True)
        if s.host_participant_id != participant_id:
            raise PermissionError("Only the host can restart the session")
        if s.winner_item_key is not None or s.status not in {"swiping", "no_match"}:
            raise ConflictError(f"Cannot restart a session that is {s.status}")

        participants = await store.list_participants(db, s.id)
        await store.delete_session_votes(db, s.id)

        s.status = "questions"
        s.timer_end_at = None
        s.completed_at = None
        s.final_candidate_keys = None
        for p in participants:
            p.questions_completed = False
        await db.commit()

    logger.info("Session %s restarted by host", s.id)
    bus.publish(s.id, SESSION_UPDATED, {"status": "questions", "timer_end_at": None})
    for p in participants:
        bus.publish(s.id, PARTICIPANT_UPDATED, {"participantId": str(p.id), "questions_completed": False})
    return s

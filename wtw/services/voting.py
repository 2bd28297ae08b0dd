from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from wtw.core.errors import ConflictError, ValidationError
from wtw.models.vote import Vote
from wtw.services import store
from wtw.services.events import SESSION_UPDATED, VOTE_ADDED, EventBus
from wtw.services.timed import needs_resolution, resolve_locked

logger = logging.getLogger(__name__)


@dataclass
class VoteResult:
    match: bool
    winner_item_key: str | None = None


@dataclass
class ExhaustionResult:
    status: str
    no_match: bool
    waiting_for_participants: bool = False
    waiting_for_timer: bool = False


def _clean_item_key(item_key: str) -> str:
    key = (item_key or "").strip()
    if not key or len(key) > 64:
        raise ValidationError("item_key must be 1-64 characters")
    return key


async def add_vote(
    db: AsyncSession,
    bus: EventBus,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    item_key: str,
    liked: bool,
) -> VoteResult:
    """Record a swipe and, in classic mode, check whether the whole group now likes the item.

    The session row is locked for the whole check so two deciding likes are
    counted one after the other; the winner write itself is conditional, so a
    second writer that still gets through finds the winner already set and
    reports no match.

    A vote arriving after a timed session's deadline is not stored; the
    session is resolved from the votes cast in time and the vote is refused.
    """
    key = _clean_item_key(item_key)
    result = VoteResult(match=False)
    expired_events: list[tuple[str, dict]] | None = None

    async with store.storage_guard(db):
        s = await store.get_session(db, session_id, lock=True)
        if s.is_terminal:
            raise ConflictError("Session has already finished")
        if s.status == "voting":
            raise ConflictError("Swiping is closed, the final vote is in progress")
        await store.get_session_participant(db, s.id, participant_id)

        if needs_resolution(s):
            # only votes cast inside the window count
            expired_events = await resolve_locked(db, s)
        else:
            await store.upsert_vote(db, session_id=s.id, participant_id=participant_id, item_key=key, liked=liked)

            if liked and not s.is_timed:
                likers = await store.count_likers(db, s.id, key)
                roster = await store.count_participants(db, s.id)
                logger.debug("Session %s item %s liked by %d/%d", s.id, key, likers, roster)
                if roster >= 1 and likers == roster:
                    if await store.declare_winner(db, s, key):
                        await store.record_history(db, s)
                        result = VoteResult(match=True, winner_item_key=key)

        await db.commit()

    if expired_events is not None:
        for name, data in expired_events:
            bus.publish(s.id, name, data)
        raise ConflictError("Swiping time is over")

    bus.publish(s.id, VOTE_ADDED, {"participantId": str(participant_id), "itemKey": key, "liked": liked})
    if result.match:
        bus.publish(s.id, SESSION_UPDATED, {"winner_item_key": result.winner_item_key, "status": "completed"})
    return result


async def delete_vote(
    db: AsyncSession,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    item_key: str,
) -> bool:
    async with store.storage_guard(db):
        s = await store.get_session(db, session_id)
        if s.is_terminal:
            raise ConflictError("Session has already finished")
        removed = await store.delete_vote(db, session_id=session_id, participant_id=participant_id, item_key=item_key)
        await db.commit()
    return removed


async def list_votes(
    db: AsyncSession,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID | None = None,
) -> list[Vote]:
    await store.get_session(db, session_id)
    return await store.list_votes(db, session_id, participant_id=participant_id)


async def report_exhausted(
    db: AsyncSession,
    bus: EventBus,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    candidate_count: int,
) -> ExhaustionResult:
    """A participant ran out of cards; end the session if everybody has."""
    if candidate_count < 0:
        raise ValidationError("candidate_count must not be negative")

    async with store.storage_guard(db):
        s = await store.get_session(db, session_id, lock=True)
        await store.get_session_participant(db, s.id, participant_id)

        if s.status != "swiping":
            await db.commit()
            return ExhaustionResult(status=s.status, no_match=s.status == "no_match")
        if s.is_timed:
            await db.commit()
            return ExhaustionResult(status=s.status, no_match=False, waiting_for_timer=True)

        participants = await store.list_participants(db, s.id)
        counts = await store.vote_counts_by_participant(db, s.id)
        everyone_done = all(counts.get(p.id, 0) >= candidate_count for p in participants)
        if not everyone_done:
            await db.commit()
            return ExhaustionResult(status=s.status, no_match=False, waiting_for_participants=True)

        moved = await store.transition_status(
            db,
            s,
            from_statuses=["swiping"],
            to_status="no_match",
            completed_at=store.now_utc(),
        )
        if moved:
            await store.record_history(db, s)
        await db.commit()

    if moved:
        logger.info("Session %s exhausted every candidate without a match", s.id)
        bus.publish(s.id, SESSION_UPDATED, {"status": "no_match"})
    return ExhaustionResult(status=s.status, no_match=s.status == "no_match")

"""Timed sessions: deadline resolution, the final vote round and its tie-break."""

from __future__ import annotations

import logging
import random
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from wtw.core.config import settings
from wtw.core.errors import ConflictError, ValidationError
from wtw.models.final_vote import FinalVote
from wtw.models.swipe_session import SwipeSession
from wtw.services import store
from wtw.services.events import SESSION_UPDATED, FINAL_VOTE_CAST, VOTING_COMPLETE, EventBus

logger = logging.getLogger(__name__)


@dataclass
class LikeTally:
    matches: list[str] = field(default_factory=list)
    top_liked: list[tuple[str, int]] = field(default_factory=list)


@dataclass
class FinalVoteResult:
    all_voted: bool
    winner: str | None = None
    was_tie: bool = False
    tied_items: list[str] = field(default_factory=list)


@dataclass
class FinalVoteStatus:
    final_votes: list[FinalVote]
    voted_count: int
    total_count: int
    all_voted: bool


def break_tie(session_id: uuid.UUID | str, tied_items: list[str]) -> str:
    """Pick among tied items the same way on every call for a given session."""
    if not tied_items:
        raise ValueError("Cannot break a tie between zero items")
    rng = random.Random(f"{session_id}:tiebreak")
    return rng.choice(sorted(tied_items))


def deadline_passed(s: SwipeSession, now: datetime | None = None) -> bool:
    end = store.as_utc(s.timer_end_at)
    if end is None:
        return False
    return end <= (now or store.now_utc())


def needs_resolution(s: SwipeSession, now: datetime | None = None) -> bool:
    return s.is_timed and s.status == "swiping" and deadline_passed(s, now)


async def tally_likes(db: AsyncSession, session_id: uuid.UUID, *, limit: int | None = None) -> LikeTally:
    counts = await store.like_counts(db, session_id)
    roster = await store.count_participants(db, session_id)

    matches = sorted(k for k, n in counts.items() if roster >= 1 and n >= roster)
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return LikeTally(matches=matches, top_liked=ranked[: limit or settings.final_vote_candidate_limit])


async def resolve_locked(db: AsyncSession, s: SwipeSession) -> list[tuple[str, dict]]:
    """Resolve an expired timed session whose row the caller already holds locked.

    Returns the events to publish once the caller has committed.
    """
    events: list[tuple[str, dict]] = []
    limit = settings.final_vote_candidate_limit
    tally = await tally_likes(db, s.id, limit=limit)

    if len(tally.matches) == 1:
        winner = tally.matches[0]
        if await store.declare_winner(db, s, winner):
            await store.record_history(db, s)
            events.append((VOTING_COMPLETE, {"winner": winner, "wasTie": False}))
            events.append((SESSION_UPDATED, {"status": s.status, "winner_item_key": winner}))

    elif tally.matches or tally.top_liked:
        if tally.matches:
            candidates = tally.matches[:limit]
        else:
            candidates = [k for k, _ in tally.top_liked]
        moved = await store.transition_status(
            db,
            s,
            from_statuses=["swiping"],
            to_status="voting",
            final_candidate_keys=candidates,
        )
        if moved:
            logger.info("Session %s timer expired, final vote over %s", s.id, candidates)
            events.append((SESSION_UPDATED, {"status": "voting", "final_candidate_keys": candidates}))

    else:
        moved = await store.transition_status(
            db,
            s,
            from_statuses=["swiping"],
            to_status="no_match",
            completed_at=store.now_utc(),
        )
        if moved:
            logger.info("Session %s timer expired with nothing liked", s.id)
            await store.record_history(db, s)
            events.append((SESSION_UPDATED, {"status": "no_match"}))

    return events


async def resolve_timed_session(
    db: AsyncSession,
    bus: EventBus,
    *,
    session_id: uuid.UUID,
    now: datetime | None = None,
) -> SwipeSession:
    """Resolve an expired timed session exactly once; a no-op before the deadline or afterwards."""
    async with store.storage_guard(db):
        s = await store.get_session(db, session_id, lock=True)
        if not needs_resolution(s, now):
            # release the row lock
            await db.commit()
            return s

        events = await resolve_locked(db, s)
        await db.commit()

    for name, data in events:
        bus.publish(s.id, name, data)
    return s


async def cast_final_vote(
    db: AsyncSession,
    bus: EventBus,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    item_key: str,
) -> FinalVoteResult:
    events: list[tuple[str, dict]] = []

    async with store.storage_guard(db):
        s = await store.get_session(db, session_id, lock=True)
        if s.status != "voting":
            raise ConflictError("Session is not in the final vote round")
        await store.get_session_participant(db, s.id, participant_id)

        if item_key not in (s.final_candidate_keys or []):
            raise ValidationError("item_key is not one of the final candidates")

        await store.add_final_vote(db, session_id=s.id, participant_id=participant_id, item_key=item_key)
        events.append((FINAL_VOTE_CAST, {}))

        votes = await store.list_final_votes(db, s.id)
        total = await store.count_participants(db, s.id)
        result = FinalVoteResult(all_voted=len(votes) >= total)

        if result.all_voted:
            counts = Counter(v.item_key for v in votes)
            top = max(counts.values())
            tied = sorted(k for k, n in counts.items() if n == top)
            result.was_tie = len(tied) > 1
            result.winner = break_tie(s.id, tied) if result.was_tie else tied[0]
            result.tied_items = tied if result.was_tie else []

            if await store.declare_winner(db, s, result.winner):
                await store.record_history(db, s)
                payload = {"winner": result.winner, "wasTie": result.was_tie}
                if result.was_tie:
                    payload["tiedItems"] = tied
                events.append((VOTING_COMPLETE, payload))
                events.append((SESSION_UPDATED, {"status": s.status, "winner_item_key": s.winner_item_key}))
            else:
                result.winner = s.winner_item_key

        await db.commit()

    for name, data in events:
        bus.publish(s.id, name, data)
    return result


async def get_final_votes(db: AsyncSession, *, session_id: uuid.UUID) -> FinalVoteStatus:
    s = await store.get_session(db, session_id)
    votes = await store.list_final_votes(db, s.id)
    total = await store.count_participants(db, s.id)
    return FinalVoteStatus(
        final_votes=votes,
        voted_count=len(votes),
        total_count=total,
        all_voted=total > 0 and len(votes) >= total,
    )

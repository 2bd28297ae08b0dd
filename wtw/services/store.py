"""Data access for session coordination.

Every helper takes the caller's ``AsyncSession`` and never commits; the
coordinator functions own the transaction so a decision and its writes land
together (or not at all).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from wtw.core.errors import ConflictError, NotFoundError, TransientStoreError
from wtw.models.final_vote import FinalVote
from wtw.models.participant import SessionParticipant
from wtw.models.session_history import SessionHistory
from wtw.models.swipe_session import TERMINAL_STATUSES, SwipeSession
from wtw.models.vote import Vote

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@asynccontextmanager
async def storage_guard(db: AsyncSession) -> AsyncIterator[None]:
    """Turn driver-level failures into ``TransientStoreError`` after rolling back."""
    try:
        yield
    except IntegrityError:
        raise
    except (OperationalError, DBAPIError) as e:
        logger.warning("Storage failure, rolling back: %s", e)
        await db.rollback()
        raise TransientStoreError("Storage temporarily unavailable, retry the request") from e


# ─────────────────────────────────────────────
# Sessions
# ─────────────────────────────────────────────


async def get_session(db: AsyncSession, session_id: uuid.UUID, *, lock: bool = False) -> SwipeSession:
    q = select(SwipeSession).where(SwipeSession.id == session_id)
    if lock:
        q = q.with_for_update().execution_options(populate_existing=True)
    s = (await db.execute(q)).scalar_one_or_none()
    if not s:
        raise NotFoundError("Session not found")
    return s


async def refresh_session(db: AsyncSession, s: SwipeSession) -> SwipeSession:
    await db.refresh(s)
    return s


async def find_session_by_code(db: AsyncSession, code: str) -> SwipeSession:
    q = (
        select(SwipeSession)
        .where(SwipeSession.code == code.strip().upper())
        .order_by(
            sa.case((SwipeSession.status.in_(TERMINAL_STATUSES), 1), else_=0),
            SwipeSession.created_at.desc(),
        )
        .limit(1)
    )
    s = (await db.execute(q)).scalar_one_or_none()
    if not s:
        raise NotFoundError("Session not found")
    return s


async def active_code_exists(db: AsyncSession, code: str) -> bool:
    q = select(SwipeSession.id).where(
        SwipeSession.code == code,
        SwipeSession.status.not_in(TERMINAL_STATUSES),
    ).limit(1)
    return (await db.execute(q)).scalar_one_or_none() is not None


async def transition_status(
    db: AsyncSession,
    s: SwipeSession,
    *,
    from_statuses: Iterable[str],
    to_status: str,
    **values,
) -> bool:
    """Conditionally move ``s`` to ``to_status``; False if someone else moved it first."""
    now = now_utc()
    stmt = (
        sa.update(SwipeSession)
        .where(SwipeSession.id == s.id, SwipeSession.status.in_(list(from_statuses)))
        .values(status=to_status, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    await db.refresh(s)
    return res.rowcount == 1


async def declare_winner(db: AsyncSession, s: SwipeSession, item_key: str) -> bool:
    """First writer wins; later calls leave the stored winner alone and return False."""
    now = now_utc()
    stmt = (
        sa.update(SwipeSession)
        .where(
            SwipeSession.id == s.id,
            SwipeSession.winner_item_key.is_(None),
            SwipeSession.status.not_in(TERMINAL_STATUSES),
        )
        .values(winner_item_key=item_key, status="completed", completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    await db.refresh(s)
    won = res.rowcount == 1
    if won:
        logger.info("Session %s winner declared: %s", s.id, item_key)
    else:
        logger.info("Session %s already resolved, ignoring winner %s", s.id, item_key)
    return won


# ─────────────────────────────────────────────
# Participants
# ─────────────────────────────────────────────


async def list_participants(db: AsyncSession, session_id: uuid.UUID) -> list[SessionParticipant]:
    q = (
        select(SessionParticipant)
        .where(SessionParticipant.session_id == session_id)
        .order_by(SessionParticipant.created_at.asc(), SessionParticipant.id.asc())
    )
    return list((await db.execute(q)).scalars().all())


async def count_participants(db: AsyncSession, session_id: uuid.UUID) -> int:
    q = select(func.count(SessionParticipant.id)).where(SessionParticipant.session_id == session_id)
    return int((await db.execute(q)).scalar_one())


async def get_participant(db: AsyncSession, participant_id: uuid.UUID) -> SessionParticipant:
    q = select(SessionParticipant).where(SessionParticipant.id == participant_id)
    p = (await db.execute(q)).scalar_one_or_none()
    if not p:
        raise NotFoundError("Participant not found")
    return p


async def get_session_participant(
    db: AsyncSession, session_id: uuid.UUID, participant_id: uuid.UUID
) -> SessionParticipant:
    q = select(SessionParticipant).where(
        SessionParticipant.id == participant_id,
        SessionParticipant.session_id == session_id,
    )
    p = (await db.execute(q)).scalar_one_or_none()
    if not p:
        raise NotFoundError("Participant not found in this session")
    return p


# ─────────────────────────────────────────────
# Swipe votes
# ─────────────────────────────────────────────


async def upsert_vote(
    db: AsyncSession,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    item_key: str,
    liked: bool,
) -> Vote:
    q = select(Vote).where(
        Vote.session_id == session_id,
        Vote.participant_id == participant_id,
        Vote.item_key == item_key,
    )
    existing = (await db.execute(q)).scalar_one_or_none()

    now = now_utc()
    if existing:
        existing.liked = liked
        existing.updated_at = now
        await db.flush()
        return existing

    v = Vote(
        session_id=session_id,
        participant_id=participant_id,
        item_key=item_key,
        liked=liked,
        created_at=now,
        updated_at=now,
    )
    db.add(v)
    await db.flush()
    return v


async def delete_vote(
    db: AsyncSession,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    item_key: str,
) -> bool:
    stmt = sa.delete(Vote).where(
        Vote.session_id == session_id,
        Vote.participant_id == participant_id,
        Vote.item_key == item_key,
    )
    res = await db.execute(stmt)
    return res.rowcount > 0


async def delete_session_votes(db: AsyncSession, session_id: uuid.UUID) -> None:
    await db.execute(sa.delete(Vote).where(Vote.session_id == session_id))
    await db.execute(sa.delete(FinalVote).where(FinalVote.session_id == session_id))


async def count_likers(db: AsyncSession, session_id: uuid.UUID, item_key: str) -> int:
    q = select(func.count(sa.distinct(Vote.participant_id))).where(
        Vote.session_id == session_id,
        Vote.item_key == item_key,
        Vote.liked.is_(True),
    )
    return int((await db.execute(q)).scalar_one())


async def list_votes(
    db: AsyncSession, session_id: uuid.UUID, *, participant_id: uuid.UUID | None = None
) -> list[Vote]:
    q = select(Vote).where(Vote.session_id == session_id)
    if participant_id is not None:
        q = q.where(Vote.participant_id == participant_id)
    q = q.order_by(Vote.created_at.asc(), Vote.item_key.asc())
    return list((await db.execute(q)).scalars().all())


async def like_counts(db: AsyncSession, session_id: uuid.UUID) -> dict[str, int]:
    q = (
        select(Vote.item_key, func.count(sa.distinct(Vote.participant_id)))
        .where(Vote.session_id == session_id, Vote.liked.is_(True))
        .group_by(Vote.item_key)
    )
    return {item_key: int(n) for item_key, n in (await db.execute(q)).all()}


async def vote_counts_by_participant(db: AsyncSession, session_id: uuid.UUID) -> dict[uuid.UUID, int]:
    q = (
        select(Vote.participant_id, func.count(Vote.id))
        .where(Vote.session_id == session_id)
        .group_by(Vote.participant_id)
    )
    return {pid: int(n) for pid, n in (await db.execute(q)).all()}


# ─────────────────────────────────────────────
# Final votes
# ─────────────────────────────────────────────


async def add_final_vote(
    db: AsyncSession,
    *,
    session_id: uuid.UUID,
    participant_id: uuid.UUID,
    item_key: str,
) -> FinalVote:
    q = select(FinalVote.id).where(
        FinalVote.session_id == session_id,
        FinalVote.participant_id == participant_id,
    )
    if (await db.execute(q)).scalar_one_or_none() is not None:
        raise ConflictError("Participant has already cast a final vote")

    fv = FinalVote(session_id=session_id, participant_id=participant_id, item_key=item_key)
    db.add(fv)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Participant has already cast a final vote") from e
    return fv


async def list_final_votes(db: AsyncSession, session_id: uuid.UUID) -> list[FinalVote]:
    q = (
        select(FinalVote)
        .where(FinalVote.session_id == session_id)
        .order_by(FinalVote.created_at.asc(), FinalVote.id.asc())
    )
    return list((await db.execute(q)).scalars().all())


# ─────────────────────────────────────────────
# History
# ─────────────────────────────────────────────


async def record_history(db: AsyncSession, s: SwipeSession) -> SessionHistory:
    participants = await list_participants(db, s.id)
    names = [p.display_name for p in participants]

    q = select(SessionHistory).where(SessionHistory.session_id == s.id)
    row = (await db.execute(q)).scalar_one_or_none()
    if row is None:
        row = SessionHistory(session_id=s.id, session_code=s.code)
        db.add(row)

    # a restarted session that finishes again overwrites its earlier outcome
    row.participants = names
    row.winner_item_key = s.winner_item_key
    row.outcome = s.status
    row.media_type = s.media_type
    row.was_timed = s.is_timed
    row.completed_at = as_utc(s.completed_at) or now_utc()
    await db.flush()
    return row


async def list_history(db: AsyncSession, *, limit: int, offset: int) -> tuple[list[SessionHistory], int]:
    total = int((await db.execute(select(func.count(SessionHistory.id)))).scalar_one())
    q = (
        select(SessionHistory)
        .order_by(SessionHistory.completed_at.desc(), SessionHistory.id.asc())
        .limit(limit)
        .offset(offset)
    )
    rows = list((await db.execute(q)).scalars().all())
    return rows, total

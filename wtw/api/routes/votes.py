from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from wtw.api.deps import get_db, get_event_bus
from wtw.api.http_errors import session_error
from wtw.core.errors import SessionError
from wtw.schemas.sessions import (
    ExhaustedRequest,
    ExhaustionOut,
    FinalVoteOut,
    FinalVoteRequest,
    FinalVoteResultOut,
    FinalVoteStatusOut,
    LikeCountOut,
    MatchesOut,
    SessionOut,
    VoteOut,
    VoteRequest,
    VoteResultOut,
)
from wtw.services.events import EventBus
from wtw.services.sessions import get_session
from wtw.services.timed import cast_final_vote, get_final_votes, resolve_timed_session, tally_likes
from wtw.services.voting import add_vote, delete_vote, list_votes, report_exhausted

router = APIRouter(tags=["votes"])


@router.post("/sessions/{session_id}/votes", response_model=VoteResultOut)
async def add_vote_route(
    session_id: UUID,
    payload: VoteRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        result = await add_vote(
            db,
            bus,
            session_id=session_id,
            participant_id=payload.participant_id,
            item_key=payload.item_key,
            liked=payload.liked,
        )
        return VoteResultOut(match=result.match, winner_item_key=result.winner_item_key)
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/{session_id}/votes", response_model=list[VoteOut])
async def list_votes_route(
    session_id: UUID,
    participant_id: UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        votes = await list_votes(db, session_id=session_id, participant_id=participant_id)
        return [VoteOut.model_validate(v) for v in votes]
    except SessionError as e:
        raise session_error(e) from e


@router.delete("/sessions/{session_id}/votes/{participant_id}/{item_key}", status_code=204)
async def delete_vote_route(
    session_id: UUID,
    participant_id: UUID,
    item_key: str,
    db: AsyncSession = Depends(get_db),
):
    try:
        await delete_vote(db, session_id=session_id, participant_id=participant_id, item_key=item_key)
        return Response(status_code=204)
    except SessionError as e:
        raise session_error(e) from e


@router.post("/sessions/{session_id}/exhausted", response_model=ExhaustionOut)
async def exhausted_route(
    session_id: UUID,
    payload: ExhaustedRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        result = await report_exhausted(
            db,
            bus,
            session_id=session_id,
            participant_id=payload.participant_id,
            candidate_count=payload.candidate_count,
        )
        return ExhaustionOut(
            status=result.status,
            no_match=result.no_match,
            waiting_for_participants=result.waiting_for_participants,
            waiting_for_timer=result.waiting_for_timer,
        )
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/{session_id}/matches", response_model=MatchesOut)
async def matches_route(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        s = await get_session(db, bus, session_id=session_id)
        tally = await tally_likes(db, s.id)
        return MatchesOut(
            status=s.status,
            winner_item_key=s.winner_item_key,
            matches=tally.matches,
            top_liked=[LikeCountOut(item_key=k, likes=n) for k, n in tally.top_liked],
            final_candidate_keys=s.final_candidate_keys,
        )
    except SessionError as e:
        raise session_error(e) from e


@router.post("/sessions/{session_id}/resolve", response_model=SessionOut)
async def resolve_route(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        s = await resolve_timed_session(db, bus, session_id=session_id)
        return SessionOut.model_validate(s)
    except SessionError as e:
        raise session_error(e) from e


@router.post("/sessions/{session_id}/final-votes", response_model=FinalVoteResultOut)
async def cast_final_vote_route(
    session_id: UUID,
    payload: FinalVoteRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        result = await cast_final_vote(
            db,
            bus,
            session_id=session_id,
            participant_id=payload.participant_id,
            item_key=payload.item_key,
        )
        return FinalVoteResultOut(
            all_voted=result.all_voted,
            winner=result.winner,
            was_tie=result.was_tie,
            tied_items=result.tied_items,
        )
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/{session_id}/final-votes", response_model=FinalVoteStatusOut)
async def final_votes_route(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        status = await get_final_votes(db, session_id=session_id)
        return FinalVoteStatusOut(
            final_votes=[FinalVoteOut.model_validate(v) for v in status.final_votes],
            voted_count=status.voted_count,
            total_count=status.total_count,
            all_voted=status.all_voted,
        )
    except SessionError as e:
        raise session_error(e) from e

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from wtw.api.deps import get_db, get_event_bus, get_media_catalog
from wtw.api.http_errors import permission_error, session_error
from wtw.core.errors import SessionError
from wtw.schemas.preferences import AggregatedPreferences
from wtw.schemas.sessions import (
    CandidatesOut,
    CreateSessionRequest,
    CreateSessionResponse,
    JoinSessionRequest,
    ParticipantOut,
    RestartSessionRequest,
    SessionOut,
    SessionStateResponse,
    UpdateParticipantRequest,
    UpdateSessionRequest,
)
from wtw.services import store
from wtw.services.candidates import build_candidates, session_preferences
from wtw.services.catalog import MediaCatalog
from wtw.services.events import EventBus
from wtw.services.sessions import (
    create_session,
    get_participants,
    get_session,
    get_session_by_code,
    join_session,
    restart_round,
    update_participant,
    update_session,
)

router = APIRouter(tags=["sessions"])


async def _state_response(db: AsyncSession, s) -> SessionStateResponse:
    participants = await store.list_participants(db, s.id)
    return SessionStateResponse(
        **SessionOut.model_validate(s).model_dump(),
        participants=[ParticipantOut.model_validate(p) for p in participants],
    )


@router.post("/sessions", response_model=CreateSessionResponse, status_code=201)
async def create_session_route(
    payload: CreateSessionRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        s, host = await create_session(
            db,
            media_type=payload.media_type,
            host_display_name=payload.display_name,
            is_guest=payload.is_guest,
            auth_token=payload.auth_token,
            timed_duration_minutes=payload.timed_duration_minutes,
        )
        return CreateSessionResponse(
            session=SessionOut.model_validate(s),
            participant=ParticipantOut.model_validate(host),
        )
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/code/{code}", response_model=SessionStateResponse)
async def session_by_code_route(
    code: str,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        s = await get_session_by_code(db, bus, code=code)
        return await _state_response(db, s)
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/{session_id}", response_model=SessionStateResponse)
async def session_state_route(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        s = await get_session(db, bus, session_id=session_id)
        return await _state_response(db, s)
    except SessionError as e:
        raise session_error(e) from e


@router.patch("/sessions/{session_id}", response_model=SessionOut)
async def update_session_route(
    session_id: UUID,
    payload: UpdateSessionRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        s = await update_session(
            db,
            bus,
            session_id=session_id,
            status=payload.status,
            preferences=payload.preferences,
        )
        return SessionOut.model_validate(s)
    except SessionError as e:
        raise session_error(e) from e


@router.post("/sessions/{session_id}/join", response_model=ParticipantOut, status_code=201)
async def join_session_route(
    session_id: UUID,
    payload: JoinSessionRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        p = await join_session(
            db,
            bus,
            session_id=session_id,
            display_name=payload.display_name,
            is_guest=payload.is_guest,
            auth_token=payload.auth_token,
        )
        return ParticipantOut.model_validate(p)
    except SessionError as e:
        raise session_error(e) from e


@router.post("/sessions/{session_id}/restart", response_model=SessionOut)
async def restart_session_route(
    session_id: UUID,
    payload: RestartSessionRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        s = await restart_round(db, bus, session_id=session_id, participant_id=payload.participant_id)
        return SessionOut.model_validate(s)
    except PermissionError as e:
        raise permission_error(e) from e
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/{session_id}/participants", response_model=list[ParticipantOut])
async def participants_route(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        participants = await get_participants(db, session_id=session_id)
        return [ParticipantOut.model_validate(p) for p in participants]
    except SessionError as e:
        raise session_error(e) from e


@router.patch("/participants/{participant_id}", response_model=ParticipantOut)
async def update_participant_route(
    participant_id: UUID,
    payload: UpdateParticipantRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        p = await update_participant(
            db,
            bus,
            participant_id=participant_id,
            display_name=payload.display_name,
            preferences=payload.preferences,
            questions_completed=payload.questions_completed,
        )
        return ParticipantOut.model_validate(p)
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/{session_id}/preferences", response_model=AggregatedPreferences)
async def preferences_route(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await session_preferences(db, session_id=session_id)
    except SessionError as e:
        raise session_error(e) from e


@router.get("/sessions/{session_id}/candidates", response_model=CandidatesOut)
async def candidates_route(
    session_id: UUID,
    participant_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    catalog: MediaCatalog = Depends(get_media_catalog),
):
    try:
        deck = await build_candidates(db, catalog, session_id=session_id, participant_id=participant_id)
        return CandidatesOut(items=deck.items, total=len(deck.items), order_mode=deck.order_mode)
    except SessionError as e:
        raise session_error(e) from e

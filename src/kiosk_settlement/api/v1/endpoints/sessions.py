# src/kiosk_settlement/api/v1/endpoints/sessions.py
"""Kiosk session endpoints."""

from fastapi import APIRouter, status

from kiosk_settlement.schemas.session import (
    DepositCreate,
    DepositResponse,
    SessionEnd,
    SessionEndResponse,
    SessionPinResponse,
    SessionResponse,
    SessionStart,
    SessionStartResponse,
    SessionSummaryResponse,
)
from kiosk_settlement.services.errors import SettlementError

from ..dependencies import ResolverDep, SessionManagerDep, http_error

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionStartResponse, status_code=status.HTTP_201_CREATED)
async def start_session(payload: SessionStart, manager: SessionManagerDep) -> SessionStartResponse:
    result = await manager.start_session(payload.user_identifier)
    return SessionStartResponse.model_validate(result)


@router.get("", response_model=list[SessionResponse])
async def list_sessions(manager: SessionManagerDep, active: bool = False) -> list[SessionResponse]:
    sessions = manager.get_active_sessions() if active else manager.get_all_sessions()
    return [SessionResponse.model_validate(s) for s in sessions]


@router.get("/summary", response_model=SessionSummaryResponse)
async def session_summary(manager: SessionManagerDep) -> SessionSummaryResponse:
    return SessionSummaryResponse.model_validate(manager.get_session_summary())


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, manager: SessionManagerDep) -> SessionResponse:
    try:
        return SessionResponse.model_validate(manager.get_session(session_id))
    except SettlementError as exc:
        raise http_error(exc) from exc


@router.post("/{session_id}/deposits", response_model=DepositResponse)
async def deposit(
    session_id: str,
    payload: DepositCreate,
    manager: SessionManagerDep,
) -> DepositResponse:
    try:
        result = await manager.deposit_to_session(session_id, payload.amount)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return DepositResponse.model_validate(result)


@router.post("/{session_id}/end", response_model=SessionEndResponse)
async def end_session(
    session_id: str,
    payload: SessionEnd,
    manager: SessionManagerDep,
    resolver: ResolverDep,
) -> SessionEndResponse:
    try:
        destination = await resolver.resolve(payload.destination)
        result = await manager.end_session(session_id, destination, payload.target_chain)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return SessionEndResponse.model_validate(result)


@router.post("/{session_id}/pin", response_model=SessionPinResponse)
async def session_to_pin(session_id: str, manager: SessionManagerDep) -> SessionPinResponse:
    """Convert the session balance into a PIN wallet."""
    try:
        result = await manager.session_to_pin(session_id)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return SessionPinResponse.model_validate(result)

"""Agent session, event log and cost routes."""

from typing import Annotated

from fastapi import APIRouter, Query, status

from sandbox_sessions.deps import CurrentUserId, Orchestrator
from sandbox_sessions.models.api import (
    CostResponse,
    EventsResponse,
    ModelUsageRequest,
    SessionRequest,
    SessionResponse,
)
from sandbox_sessions.models.session import AgentEventInfo, SessionInfo
from sandbox_sessions.validation import validate_session_id

router = APIRouter(prefix="/api/agents", tags=["agents"])

SessionIdQuery = Annotated[str | None, Query(alias="sessionId")]


@router.get("/events", response_model=EventsResponse)
async def get_events(
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
    session_id: SessionIdQuery = None,
) -> EventsResponse:
    """Return all events of a session owned by the caller, oldest first."""
    session_id = validate_session_id(session_id)
    events = await orchestrator.list_events(session_id, user_id)
    return EventsResponse(events=events)


@router.post("/sessions", response_model=SessionInfo, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> SessionInfo:
    """Start a new agent session, optionally with a caller-chosen id."""
    return await orchestrator.start_session(user_id, request.session_id)


@router.get("/session", response_model=SessionResponse)
async def get_latest_session(
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> SessionResponse:
    """Return the caller's most recent session, if any."""
    return SessionResponse(session=await orchestrator.latest_session(user_id))


@router.post("/usage", response_model=AgentEventInfo, status_code=status.HTTP_201_CREATED)
async def record_usage(
    request: ModelUsageRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> AgentEventInfo:
    """Record and price one model invocation."""
    session_id = validate_session_id(request.session_id)
    return await orchestrator.record_model_usage(
        session_id,
        user_id,
        request.model or "",
        request.usage,
    )


@router.get("/cost", response_model=CostResponse)
async def get_session_cost(
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
    session_id: SessionIdQuery = None,
) -> CostResponse:
    """Running spend of a session."""
    session_id = validate_session_id(session_id)
    breakdown = await orchestrator.session_cost(session_id, user_id)
    return CostResponse(session_id=session_id, cost=breakdown.to_dict())

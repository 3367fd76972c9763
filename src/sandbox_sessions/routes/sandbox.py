"""Sandbox lifecycle and control routes."""

from fastapi import APIRouter

from sandbox_sessions.deps import CurrentUserId, Orchestrator
from sandbox_sessions.models.api import (
    CloseResponse,
    ReloadResponse,
    SandboxConnectRequest,
    SandboxConnectResponse,
    SandboxLogsRequest,
    SessionRequest,
)
from sandbox_sessions.models.sandbox import ConnectResult, SandboxHealth, SandboxLogs
from sandbox_sessions.validation import validate_sandbox_id, validate_session_id

router = APIRouter(prefix="/api/sandbox", tags=["sandbox"])


def _connect_response(result: ConnectResult) -> SandboxConnectResponse:
    return SandboxConnectResponse(
        connected=result.is_ready,
        status=result.state.value,
        sandbox_id=result.live_id,
    )


@router.post(
    "/connect",
    response_model=SandboxConnectResponse,
    response_model_exclude_none=True,
    response_model_by_alias=True,
)
async def connect_sandbox(
    request: SandboxConnectRequest,
    _user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> SandboxConnectResponse:
    """Check whether a sandbox is still alive. Unreachable is idle, not an error."""
    sandbox_id = validate_sandbox_id(request.sandbox_id)
    return _connect_response(await orchestrator.connect_sandbox(sandbox_id))


@router.post(
    "/create",
    response_model=SandboxConnectResponse,
    response_model_exclude_none=True,
    response_model_by_alias=True,
)
async def create_sandbox(
    request: SessionRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> SandboxConnectResponse:
    """Reconnect to the session's sandbox, creating one when needed."""
    session_id = validate_session_id(request.session_id)
    return _connect_response(await orchestrator.ensure_sandbox(session_id, user_id))


@router.post(
    "/check",
    response_model=SandboxConnectResponse,
    response_model_exclude_none=True,
    response_model_by_alias=True,
)
async def check_sandbox(
    request: SessionRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> SandboxConnectResponse:
    """Check the session's sandbox, forgetting it if it has expired."""
    session_id = validate_session_id(request.session_id)
    return _connect_response(await orchestrator.check_sandbox(session_id, user_id))


@router.post("/health", response_model=SandboxHealth)
async def sandbox_health(
    request: SessionRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> SandboxHealth:
    """Sandbox and bundler health for the session."""
    session_id = validate_session_id(request.session_id)
    return await orchestrator.sandbox_health(session_id, user_id)


@router.post("/reload", response_model=ReloadResponse)
async def reload_bundler(
    request: SessionRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> ReloadResponse:
    """Trigger a bundler hot reload in the session's sandbox."""
    session_id = validate_session_id(request.session_id)
    result = await orchestrator.trigger_reload(session_id, user_id)
    return ReloadResponse(success=result.ok, reason=result.reason.value if result.reason else None)


@router.post("/close", response_model=CloseResponse)
async def close_sandbox(
    request: SessionRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> CloseResponse:
    """Destroy the session's sandbox."""
    session_id = validate_session_id(request.session_id)
    closed = await orchestrator.close_sandbox(session_id, user_id)
    return CloseResponse(success=True, closed=closed)


@router.post("/logs", response_model=SandboxLogs, response_model_exclude_none=True)
async def sandbox_logs(
    request: SandboxLogsRequest,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
) -> SandboxLogs:
    """Tail of the agent log file in the session's sandbox."""
    session_id = validate_session_id(request.session_id)
    return await orchestrator.sandbox_logs(session_id, user_id, request.lines)

"""Session orchestration: ties agent sessions to sandboxes and the event log.

The orchestrator is the only writer of a session's sandbox id and of the
lifecycle events that describe it. The sandbox id is written only after a
successful create or connect, and cleared once a sandbox is found idle.
"""

from __future__ import annotations

from uuid import uuid4

import structlog
from pydantic import ValidationError

from sandbox_sessions.config import settings
from sandbox_sessions.cost.accountant import CostAccountant, CostBreakdown, TokenUsage
from sandbox_sessions.event_log import EventLog
from sandbox_sessions.exceptions import (
    InvalidRequestError,
    SandboxNotFoundError,
    SandboxUnavailableError,
    SessionAccessDeniedError,
)
from sandbox_sessions.managers.connection_manager import SandboxConnectionManager
from sandbox_sessions.managers.control_channel import ControlChannel
from sandbox_sessions.managers.session_locks import SessionLocks
from sandbox_sessions.models.sandbox import (
    STATUS_MESSAGES,
    ConnectResult,
    ProbeOutcome,
    ReloadFailure,
    ReloadResult,
    SandboxHandle,
    SandboxHealth,
    SandboxHealthStatus,
    SandboxLogs,
    SandboxState,
)
from sandbox_sessions.models.session import AgentEventInfo, EventType, SessionInfo
from sandbox_sessions.providers.base import SandboxProvider
from sandbox_sessions.storage.session_store import SessionStore
from sandbox_sessions.validation import validate_external_id, validate_session_id

logger = structlog.get_logger()

MAX_LOG_LINES = 1000
SANDBOX_NOT_RUNNING = "Sandbox not running"


class SessionOrchestrator:
    """Coordinates session records, sandboxes, control signals and costs."""

    def __init__(
        self,
        store: SessionStore,
        event_log: EventLog,
        provider: SandboxProvider,
        connections: SandboxConnectionManager,
        control: ControlChannel,
        accountant: CostAccountant,
        locks: SessionLocks | None = None,
        log_file: str | None = None,
    ) -> None:
        self._store = store
        self.event_log = event_log
        self.provider = provider
        self.connections = connections
        self.control = control
        self.accountant = accountant
        self.locks = locks or SessionLocks()
        self.log_file = log_file or settings.sandbox_log_file

    # Users and sessions

    async def resolve_user(self, external_id: str) -> str:
        """Map a verified identity subject to the durable user id."""
        validate_external_id(external_id)
        return await self._store.get_or_create_user(external_id)

    async def start_session(self, user_id: str, session_id: str | None = None) -> SessionInfo:
        """Create a new agent session owned by user_id.

        Raises:
            InvalidRequestError: Malformed or already used session id.
        """
        session_id = validate_session_id(session_id) if session_id is not None else str(uuid4())
        session = await self._store.create_session(session_id, user_id)
        await self.event_log.append(session_id, EventType.SESSION_STARTED.value, {})
        logger.info("Agent session started", session_id=session_id, user_id=user_id)
        return session

    async def latest_session(self, user_id: str) -> SessionInfo | None:
        return await self._store.get_latest_session(user_id)

    async def get_session(self, session_id: str, user_id: str) -> SessionInfo:
        """Return a session owned by user_id.

        Raises:
            SessionAccessDeniedError: Missing or owned by another user.
        """
        validate_session_id(session_id)
        session = await self._store.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise SessionAccessDeniedError
        return session

    # Sandbox lifecycle

    async def connect_sandbox(self, sandbox_id: str) -> ConnectResult:
        """Reconnect by raw sandbox id without touching any session."""
        return await self.connections.connect(sandbox_id)

    async def ensure_sandbox(self, session_id: str, user_id: str) -> ConnectResult:
        """Reconnect to the session's sandbox, or create one if there is none.

        Always returns READY; provider faults propagate.
        """
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)

            if session.sandbox_id:
                handle = await self.connections.open(session.sandbox_id)
                if handle is not None:
                    await self.event_log.append(
                        session_id,
                        EventType.SANDBOX_CONNECTED.value,
                        {"sandbox_id": handle.sandbox_id},
                    )
                    return ConnectResult(state=SandboxState.READY, live_id=handle.sandbox_id)
                await self._mark_idle(session_id, session.sandbox_id)

            handle = await self.provider.create()
            await self._store.set_sandbox_id(session_id, handle.sandbox_id)
            await self.event_log.append(
                session_id,
                EventType.SANDBOX_CREATED.value,
                {"sandbox_id": handle.sandbox_id},
            )
            logger.info(
                "Sandbox created for session",
                session_id=session_id,
                sandbox_id=handle.sandbox_id,
            )
            return ConnectResult(state=SandboxState.READY, live_id=handle.sandbox_id)

    async def check_sandbox(self, session_id: str, user_id: str) -> ConnectResult:
        """Report whether the session's sandbox is still alive.

        An unreachable sandbox is forgotten: a sandbox_idle event is appended
        and the stored id cleared.
        """
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            handle = await self._open_session_sandbox(session)
            if handle is None:
                return ConnectResult(state=SandboxState.IDLE)
            return ConnectResult(state=SandboxState.READY, live_id=handle.sandbox_id)

    async def sandbox_health(self, session_id: str, user_id: str) -> SandboxHealth:
        """Check both the sandbox and the bundler session inside it."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            handle = await self._open_session_sandbox(session)
            if handle is None:
                return SandboxHealth(
                    healthy=False,
                    status=SandboxHealthStatus.SLEEPING,
                    sandbox_alive=False,
                    metro_running=False,
                    message=STATUS_MESSAGES[SandboxHealthStatus.SLEEPING],
                )

            probe = await self.control.probe(handle)
            status = (
                SandboxHealthStatus.READY
                if probe == ProbeOutcome.PRESENT
                else SandboxHealthStatus.METRO_STOPPED
            )
            return SandboxHealth(
                healthy=status == SandboxHealthStatus.READY,
                status=status,
                sandbox_alive=True,
                metro_running=probe == ProbeOutcome.PRESENT,
                sandbox_id=handle.sandbox_id,
                message=STATUS_MESSAGES[status],
            )

    async def trigger_reload(self, session_id: str, user_id: str) -> ReloadResult:
        """Reload the bundler in the session's sandbox and audit the outcome."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            handle = await self._open_session_sandbox(session)
            if handle is None:
                return ReloadResult(ok=False, reason=ReloadFailure.NO_SESSION)

            result = await self.control.trigger_reload(handle)
            await self.event_log.append(
                session_id,
                EventType.METRO_RELOAD.value,
                {
                    "sandbox_id": handle.sandbox_id,
                    "ok": result.ok,
                    "reason": result.reason.value if result.reason else None,
                    "probe": result.probe.value if result.probe else None,
                },
            )
            return result

    async def close_sandbox(self, session_id: str, user_id: str) -> bool:
        """Destroy the session's sandbox if it still runs and forget its id.

        Returns:
            True if a sandbox id was attached to the session.
        """
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            if not session.sandbox_id:
                return False

            handle = await self.connections.open(session.sandbox_id)
            if handle is not None:
                await self.provider.kill(handle)

            await self._store.set_sandbox_id(session_id, None)
            await self.event_log.append(
                session_id,
                EventType.SANDBOX_CLOSED.value,
                {"sandbox_id": session.sandbox_id, "was_running": handle is not None},
            )
            logger.info("Sandbox closed", session_id=session_id, sandbox_id=session.sandbox_id)
            return True

    async def sandbox_logs(
        self,
        session_id: str,
        user_id: str,
        lines: int | None = None,
    ) -> SandboxLogs:
        """Read the last lines of the agent log file in the session's sandbox.

        A sandbox that is gone is reported in the result, like check_sandbox.

        Raises:
            InvalidRequestError: lines outside 1..MAX_LOG_LINES.
        """
        lines = settings.sandbox_log_default_lines if lines is None else lines
        if not 1 <= lines <= MAX_LOG_LINES:
            raise InvalidRequestError(f"lines must be between 1 and {MAX_LOG_LINES}")

        async with self.locks.hold(session_id):
            session = await self.get_session(session_id, user_id)
            handle = await self._open_session_sandbox(session)
            if handle is None:
                return SandboxLogs(success=False, error=SANDBOX_NOT_RUNNING)

            try:
                result = await self.provider.run_command(
                    handle,
                    ["tail", "-n", str(lines), self.log_file],
                    timeout=settings.sandbox_command_timeout,
                )
            except (SandboxNotFoundError, SandboxUnavailableError) as e:
                logger.info(
                    "Sandbox went away while reading logs",
                    session_id=session_id,
                    sandbox_id=handle.sandbox_id,
                    error=str(e),
                )
                return SandboxLogs(success=False, error=SANDBOX_NOT_RUNNING)

        if not result.succeeded and not result.stdout:
            logger.info(
                "Sandbox log file unreadable",
                session_id=session_id,
                log_file=self.log_file,
                exit_code=result.exit_code,
            )
            return SandboxLogs(success=False, error="Log file not found or empty")
        return SandboxLogs(success=True, logs=result.stdout)

    async def _open_session_sandbox(self, session: SessionInfo) -> SandboxHandle | None:
        """Reconnect to the stored sandbox, clearing it if it is gone."""
        if not session.sandbox_id:
            return None
        handle = await self.connections.open(session.sandbox_id)
        if handle is None:
            await self._mark_idle(session.session_id, session.sandbox_id)
        return handle

    async def _mark_idle(self, session_id: str, sandbox_id: str) -> None:
        await self.event_log.append(
            session_id,
            EventType.SANDBOX_IDLE.value,
            {"sandbox_id": sandbox_id},
        )
        await self._store.set_sandbox_id(session_id, None)
        logger.info("Sandbox went idle", session_id=session_id, sandbox_id=sandbox_id)

    # Events and cost

    async def list_events(self, session_id: str, user_id: str) -> list[AgentEventInfo]:
        validate_session_id(session_id)
        return await self.event_log.list(session_id, user_id)

    async def record_model_usage(
        self,
        session_id: str,
        user_id: str,
        model: str,
        usage: TokenUsage,
    ) -> AgentEventInfo:
        """Price one model invocation and append it to the session log."""
        if not model:
            raise InvalidRequestError("Model required")
        await self.get_session(session_id, user_id)

        cost = self.accountant.price(usage, model)
        return await self.event_log.append(
            session_id,
            EventType.MODEL_USAGE.value,
            {
                "model": model,
                "priced_as": self.accountant.pricing.resolve_model(model),
                "usage": usage.to_payload(),
                "cost": str(cost),
            },
        )

    async def session_cost(self, session_id: str, user_id: str) -> CostBreakdown:
        """Running spend over every event in the session that carries usage."""
        events = await self.list_events(session_id, user_id)
        breakdown = CostBreakdown()
        for event in events:
            usage_data = event.event_data.get("usage")
            if not isinstance(usage_data, dict):
                continue
            model = event.event_data.get("model") or self.accountant.pricing.default_model
            try:
                usage = TokenUsage.model_validate(usage_data)
            except ValidationError:
                logger.warning(
                    "Skipping malformed usage event",
                    session_id=session_id,
                    event_id=event.id,
                )
                continue
            breakdown.add_call(model, usage, self.accountant.price(usage, model))
        return breakdown


"""Shared test fixtures for sandbox sessions tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from sandbox_sessions.cost import CostAccountant, build_pricing_table
from sandbox_sessions.deps import get_orchestrator
from sandbox_sessions.event_log import EventLog
from sandbox_sessions.exceptions import InvalidRequestError, SandboxNotFoundError
from sandbox_sessions.main import app
from sandbox_sessions.managers import ControlChannel, SandboxConnectionManager, SessionLocks
from sandbox_sessions.models.sandbox import CommandResult, SandboxHandle
from sandbox_sessions.models.session import AgentEventInfo, SessionInfo
from sandbox_sessions.orchestrator import SessionOrchestrator
from sandbox_sessions.providers.base import SandboxProvider

if TYPE_CHECKING:
    from collections.abc import Generator


# ============================================
# Storage Fixtures
# ============================================


class MockSessionStore:
    """In-memory mock session store for unit tests without a database."""

    def __init__(self) -> None:
        self.users: dict[str, str] = {}
        self.sessions: dict[str, SessionInfo] = {}
        self.events: list[AgentEventInfo] = []
        self._event_seq = 0
        self._clock = datetime(2026, 1, 1, tzinfo=UTC)

    def _now(self) -> datetime:
        """Strictly increasing timestamps so ordering is deterministic."""
        self._clock += timedelta(milliseconds=1)
        return self._clock

    async def get_user_id(self, external_id: str) -> str | None:
        return self.users.get(external_id)

    async def get_or_create_user(self, external_id: str) -> str:
        return self.users.setdefault(external_id, str(uuid4()))

    async def create_session(self, session_id: str, user_id: str) -> SessionInfo:
        if session_id in self.sessions:
            raise InvalidRequestError(f"Session {session_id} already exists")
        now = self._now()
        session = SessionInfo(
            session_id=session_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        self.sessions[session_id] = session
        return session

    async def get_session(self, session_id: str) -> SessionInfo | None:
        return self.sessions.get(session_id)

    async def get_latest_session(self, user_id: str) -> SessionInfo | None:
        owned = [s for s in self.sessions.values() if s.user_id == user_id]
        return max(owned, key=lambda s: s.created_at) if owned else None

    async def set_sandbox_id(self, session_id: str, sandbox_id: str | None) -> None:
        session = self.sessions.get(session_id)
        if session is not None:
            self.sessions[session_id] = session.model_copy(
                update={"sandbox_id": sandbox_id, "updated_at": self._now()}
            )

    async def append_event(
        self,
        session_id: str,
        event_type: str,
        event_data: dict[str, Any],
    ) -> AgentEventInfo:
        self._event_seq += 1
        event = AgentEventInfo(
            id=self._event_seq,
            session_id=session_id,
            event_type=event_type,
            event_data=event_data,
            created_at=self._now(),
        )
        self.events.append(event)
        return event

    async def list_events(self, session_id: str) -> list[AgentEventInfo]:
        return sorted(
            (e for e in self.events if e.session_id == session_id),
            key=lambda e: (e.created_at, e.id),
        )

    def event_types(self, session_id: str) -> list[str]:
        """Event kinds of a session in log order."""
        return [e.event_type for e in self.events if e.session_id == session_id]


@pytest.fixture
def mock_store() -> MockSessionStore:
    """Provide an empty in-memory session store."""
    return MockSessionStore()


# ============================================
# Sandbox Provider Fixtures
# ============================================


class FakeSandboxProvider(SandboxProvider):
    """In-memory sandbox provider.

    Sandboxes live until expire() or kill(). connect_error, when set, is
    raised by every connect call. command_results maps a tmux subcommand
    ("has-session", "send-keys") or any other program name ("tail") to a
    CommandResult or an exception.
    """

    def __init__(self) -> None:
        self.live: set[str] = set()
        self.created: list[str] = []
        self.killed: list[str] = []
        self.connect_calls: list[str] = []
        self.commands: list[list[str]] = []
        self.command_results: dict[str, CommandResult | Exception] = {}
        self.connect_error: Exception | None = None

    async def create(self) -> SandboxHandle:
        # Yield so concurrent callers can interleave
        await asyncio.sleep(0)
        sandbox_id = f"sbx-{len(self.created) + 1}"
        self.created.append(sandbox_id)
        self.live.add(sandbox_id)
        return SandboxHandle(sandbox_id=sandbox_id)

    async def connect(self, sandbox_id: str) -> SandboxHandle:
        self.connect_calls.append(sandbox_id)
        if self.connect_error is not None:
            raise self.connect_error
        if sandbox_id not in self.live:
            raise SandboxNotFoundError(sandbox_id)
        return SandboxHandle(sandbox_id=sandbox_id)

    async def run_command(
        self,
        handle: SandboxHandle,
        argv: list[str],
        timeout: float | None = None,
    ) -> CommandResult:
        self.commands.append(argv)
        key = argv[1] if argv[0] == "tmux" else argv[0]
        result = self.command_results.get(key, CommandResult(exit_code=0))
        if isinstance(result, Exception):
            raise result
        return result

    async def kill(self, handle: SandboxHandle) -> None:
        self.live.discard(handle.sandbox_id)
        self.killed.append(handle.sandbox_id)

    def expire(self, sandbox_id: str) -> None:
        """Simulate the provider reclaiming an idle sandbox."""
        self.live.discard(sandbox_id)


@pytest.fixture
def fake_provider() -> FakeSandboxProvider:
    """Provide a sandbox provider with no sandboxes."""
    return FakeSandboxProvider()


# ============================================
# Service Fixtures
# ============================================


@pytest.fixture
def accountant() -> CostAccountant:
    """Cost accountant using the built-in pricing table."""
    return CostAccountant(build_pricing_table())


@pytest.fixture
def event_log(mock_store: MockSessionStore) -> EventLog:
    return EventLog(mock_store)  # type: ignore[arg-type]


@pytest.fixture
def orchestrator(
    mock_store: MockSessionStore,
    event_log: EventLog,
    fake_provider: FakeSandboxProvider,
    accountant: CostAccountant,
) -> SessionOrchestrator:
    """Orchestrator wired to the in-memory store and fake provider."""
    return SessionOrchestrator(
        store=mock_store,  # type: ignore[arg-type]
        event_log=event_log,
        provider=fake_provider,
        connections=SandboxConnectionManager(fake_provider),
        control=ControlChannel(fake_provider, session_name="metro", command_timeout=5),
        accountant=accountant,
        locks=SessionLocks(),
    )


@pytest.fixture
async def owned_session(orchestrator: SessionOrchestrator) -> SessionInfo:
    """A session owned by user-1."""
    return await orchestrator.start_session("user-1", "session-1")


# ============================================
# FastAPI Client Fixtures
# ============================================


@pytest.fixture
def fastapi_client(orchestrator: SessionOrchestrator) -> Generator[TestClient, None, None]:
    """Test client with the orchestrator dependency overridden.

    The lifespan is not entered, so no database connection is opened.
    """
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Identity header as set by the auth gateway."""
    return {"X-User-ID": "ext-user-1"}

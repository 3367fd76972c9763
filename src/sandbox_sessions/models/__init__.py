"""Models for the sandbox sessions service."""

from sandbox_sessions.models.sandbox import (
    STATUS_MESSAGES,
    CommandResult,
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
from sandbox_sessions.models.session import (
    AgentEventInfo,
    EventType,
    SessionInfo,
    SessionStatus,
)

__all__ = [
    "STATUS_MESSAGES",
    "AgentEventInfo",
    "CommandResult",
    "ConnectResult",
    "EventType",
    "ProbeOutcome",
    "ReloadFailure",
    "ReloadResult",
    "SandboxHandle",
    "SandboxHealth",
    "SandboxHealthStatus",
    "SandboxLogs",
    "SandboxState",
    "SessionInfo",
    "SessionStatus",
]

"""Sandbox connection and control models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel


class SandboxState(str, Enum):
    """Reachability of a sandbox as seen by the connection manager."""

    READY = "ready"
    IDLE = "idle"
    # Never returned; carried by SandboxConnectionFailed
    FAILED = "failed"


class ConnectResult(BaseModel):
    """Outcome of a reconnection attempt. live_id is set only when READY."""

    state: SandboxState
    live_id: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.state == SandboxState.READY


class ProbeOutcome(str, Enum):
    """Result of checking for a named tmux session inside a sandbox."""

    PRESENT = "present"
    ABSENT = "absent"
    PROBE_ERROR = "probe_error"


class ReloadFailure(str, Enum):
    """Why a reload signal was not delivered."""

    NO_SESSION = "no_session"
    DELIVERY_FAILED = "delivery_failed"


class ReloadResult(BaseModel):
    """Outcome of a reload trigger.

    probe keeps the internal probe outcome so an ABSENT session can be told
    apart from a failed probe in logs and audit events, while reason stays
    NO_SESSION for both.
    """

    ok: bool
    reason: ReloadFailure | None = None
    probe: ProbeOutcome | None = None


class CommandResult(BaseModel):
    """Exit status and output of a command run inside a sandbox."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass
class SandboxHandle:
    """Live connection to a sandbox. Never persisted; only sandbox_id is."""

    sandbox_id: str
    native: Any = field(default=None, repr=False)


class SandboxHealthStatus(str, Enum):
    """User-facing sandbox status."""

    SLEEPING = "sleeping"
    READY = "ready"
    METRO_STOPPED = "metro_stopped"


STATUS_MESSAGES: dict[SandboxHealthStatus, str] = {
    SandboxHealthStatus.SLEEPING: "Your app is sleeping",
    SandboxHealthStatus.READY: "Ready to preview",
    SandboxHealthStatus.METRO_STOPPED: "Metro bundler stopped",
}


class SandboxHealth(BaseModel):
    """Combined sandbox and bundler health."""

    healthy: bool
    status: SandboxHealthStatus
    sandbox_alive: bool
    metro_running: bool
    sandbox_id: str | None = None
    message: str


class SandboxLogs(BaseModel):
    """Tail of the agent log file inside a sandbox."""

    success: bool
    logs: str = ""
    error: str | None = None

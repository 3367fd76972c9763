"""Request and response bodies for the HTTP surface.

Field names on the wire are camelCase to match the web client.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sandbox_sessions.cost.accountant import TokenUsage
from sandbox_sessions.models.session import AgentEventInfo, SessionInfo


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SandboxConnectRequest(CamelModel):
    sandbox_id: str | None = Field(default=None, alias="sandboxId")


class SandboxConnectResponse(CamelModel):
    connected: bool
    status: str
    sandbox_id: str | None = Field(default=None, alias="sandboxId")


class SessionRequest(CamelModel):
    session_id: str | None = Field(default=None, alias="sessionId")


class SandboxLogsRequest(CamelModel):
    session_id: str | None = Field(default=None, alias="sessionId")
    lines: int | None = None


class ReloadResponse(CamelModel):
    success: bool
    reason: str | None = None


class CloseResponse(CamelModel):
    success: bool
    closed: bool


class ModelUsageRequest(CamelModel):
    session_id: str | None = Field(default=None, alias="sessionId")
    model: str | None = None
    usage: TokenUsage = Field(default_factory=TokenUsage)


class EventsResponse(BaseModel):
    events: list[AgentEventInfo]


class SessionResponse(BaseModel):
    session: SessionInfo | None


class CostResponse(CamelModel):
    session_id: str = Field(alias="sessionId")
    cost: dict[str, Any]

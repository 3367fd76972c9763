"""Session and event models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    """Lifecycle status of an agent session."""

    ACTIVE = "active"


class EventType(str, Enum):
    """Event kinds written by the orchestrator.

    The log accepts any string as a kind; these are the ones this service
    writes itself.
    """

    SESSION_STARTED = "session_started"
    SANDBOX_CREATED = "sandbox_created"
    SANDBOX_CONNECTED = "sandbox_connected"
    SANDBOX_IDLE = "sandbox_idle"
    SANDBOX_CLOSED = "sandbox_closed"
    METRO_RELOAD = "metro_reload"
    MODEL_USAGE = "model_usage"


class SessionInfo(BaseModel):
    """Durable agent session record."""

    session_id: str
    user_id: str
    sandbox_id: str | None = None
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AgentEventInfo(BaseModel):
    """Immutable entry of a session's event log."""

    id: int
    session_id: str
    event_type: str
    event_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}

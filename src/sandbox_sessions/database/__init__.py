"""Database layer."""

from sandbox_sessions.database.connection import (
    close_database,
    get_engine,
    get_session_factory,
    init_database,
)
from sandbox_sessions.database.models import AgentEvent, AgentSession, Base, User

__all__ = [
    "AgentEvent",
    "AgentSession",
    "Base",
    "User",
    "close_database",
    "get_engine",
    "get_session_factory",
    "init_database",
]

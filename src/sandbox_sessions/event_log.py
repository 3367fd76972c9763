"""Append-only, ownership-checked event log for agent sessions."""

from __future__ import annotations

from typing import Any

import structlog

from sandbox_sessions.exceptions import SessionAccessDeniedError
from sandbox_sessions.models.session import AgentEventInfo
from sandbox_sessions.storage.session_store import SessionStore

logger = structlog.get_logger()


class EventLog:
    """Session-scoped event log.

    Reading requires the requester to own the session. A missing session and
    a session owned by someone else fail identically.
    """

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    async def append(
        self,
        session_id: str,
        event_type: str,
        event_data: dict[str, Any] | None = None,
    ) -> AgentEventInfo:
        """Append an event. Storage failures propagate as StorageError."""
        event = await self._store.append_event(session_id, event_type, event_data or {})
        logger.debug(
            "Event appended",
            session_id=session_id,
            event_type=event_type,
            event_id=event.id,
        )
        return event

    async def list(self, session_id: str, requester_user_id: str) -> list[AgentEventInfo]:
        """Return the session's events oldest first.

        Raises:
            SessionAccessDeniedError: Session missing or not owned by the requester.
        """
        session = await self._store.get_session(session_id)
        if session is None or session.user_id != requester_user_id:
            logger.warning(
                "Event log access denied",
                session_id=session_id,
                requester_user_id=requester_user_id,
            )
            raise SessionAccessDeniedError

        return await self._store.list_events(session_id)

"""Durable storage for users, agent sessions and their event logs.

SessionStore runs with the service's own database credential and applies
no ownership rules. It is handed explicitly to the components that need it
(EventLog, SessionOrchestrator), which do the authorization themselves.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sandbox_sessions.database.models import AgentEvent, AgentSession, User
from sandbox_sessions.exceptions import InvalidRequestError, StorageError
from sandbox_sessions.models.session import AgentEventInfo, SessionInfo

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()


class SessionStore:
    """SQLAlchemy-backed store for sessions and events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(
        self,
        operation: str,
        raise_integrity: bool = False,
    ) -> AsyncGenerator[AsyncSession, None]:
        """Open a session, commit on success and wrap driver errors.

        Constraint violations are wrapped like any other driver error unless
        raise_integrity is set, for callers that translate them themselves.
        """
        async with self._session_factory() as db:
            try:
                yield db
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                if raise_integrity and isinstance(e, IntegrityError):
                    raise
                logger.exception("Storage operation failed", operation=operation)
                raise StorageError(f"Storage operation failed: {operation}") from e

    # Users

    async def get_user_id(self, external_id: str) -> str | None:
        """Map an identity provider subject id to the durable user id."""
        async with self._transaction("get_user_id") as db:
            result = await db.execute(select(User.id).where(User.external_id == external_id))
            return result.scalar_one_or_none()

    async def get_or_create_user(self, external_id: str) -> str:
        """Return the user id for a subject, creating the user on first contact."""
        user_id = await self.get_user_id(external_id)
        if user_id:
            return user_id

        try:
            async with self._transaction("create_user", raise_integrity=True) as db:
                user = User(external_id=external_id)
                db.add(user)
                await db.flush()
                logger.info("Created user", user_id=user.id)
                return user.id
        except IntegrityError:
            # Lost a race with a concurrent first request for the same subject
            user_id = await self.get_user_id(external_id)
            if user_id is None:
                raise StorageError("User disappeared after concurrent creation") from None
            return user_id

    # Sessions

    async def create_session(self, session_id: str, user_id: str) -> SessionInfo:
        """Insert a new session owned by user_id.

        Raises:
            InvalidRequestError: If the session id is already taken.
        """
        now = datetime.now(UTC)
        try:
            async with self._transaction("create_session", raise_integrity=True) as db:
                row = AgentSession(
                    session_id=session_id,
                    user_id=user_id,
                    created_at=now,
                    updated_at=now,
                )
                db.add(row)
                await db.flush()
                return SessionInfo.model_validate(row)
        except IntegrityError as e:
            raise InvalidRequestError(f"Session {session_id} already exists") from e

    async def get_session(self, session_id: str) -> SessionInfo | None:
        async with self._transaction("get_session") as db:
            row = await db.get(AgentSession, session_id)
            return SessionInfo.model_validate(row) if row else None

    async def get_latest_session(self, user_id: str) -> SessionInfo | None:
        """Most recently created session for a user."""
        async with self._transaction("get_latest_session") as db:
            result = await db.execute(
                select(AgentSession)
                .where(AgentSession.user_id == user_id)
                .order_by(AgentSession.created_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return SessionInfo.model_validate(row) if row else None

    async def set_sandbox_id(self, session_id: str, sandbox_id: str | None) -> None:
        """Attach or detach (None) the session's sandbox."""
        async with self._transaction("set_sandbox_id") as db:
            await db.execute(
                update(AgentSession)
                .where(AgentSession.session_id == session_id)
                .values(sandbox_id=sandbox_id, updated_at=datetime.now(UTC))
            )

    # Events

    async def append_event(
        self,
        session_id: str,
        event_type: str,
        event_data: dict[str, Any],
    ) -> AgentEventInfo:
        """Insert an event and touch the owning session."""
        now = datetime.now(UTC)
        async with self._transaction("append_event") as db:
            row = AgentEvent(
                session_id=session_id,
                event_type=event_type,
                event_data=event_data,
                created_at=now,
            )
            db.add(row)
            await db.execute(
                update(AgentSession)
                .where(AgentSession.session_id == session_id)
                .values(updated_at=now)
            )
            await db.flush()
            return AgentEventInfo.model_validate(row)

    async def list_events(self, session_id: str) -> list[AgentEventInfo]:
        """All events of a session, oldest first. Ties keep insertion order."""
        async with self._transaction("list_events") as db:
            result = await db.execute(
                select(AgentEvent)
                .where(AgentEvent.session_id == session_id)
                .order_by(AgentEvent.created_at, AgentEvent.id)
            )
            return [AgentEventInfo.model_validate(row) for row in result.scalars()]

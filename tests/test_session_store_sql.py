"""Tests for SessionStore against an in-memory SQLite database."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from unittest.mock import patch

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sandbox_sessions.database.models import Base
from sandbox_sessions.exceptions import InvalidRequestError, StorageError
from sandbox_sessions.storage import SessionStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def sql_store() -> AsyncGenerator[SessionStore, None]:
    """Store backed by a fresh in-memory database with foreign keys enforced."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield SessionStore(async_sessionmaker(engine, expire_on_commit=False))

    await engine.dispose()


def frozen_clock(*moments: datetime):
    """Patch the store's clock to return the given moments in order."""
    clock = patch("sandbox_sessions.storage.session_store.datetime")
    mock_datetime = clock.start()
    mock_datetime.now.side_effect = list(moments)
    return clock


async def seed_session(store: SessionStore, session_id: str = "session-1") -> str:
    user_id = await store.get_or_create_user("auth0|owner")
    await store.create_session(session_id, user_id)
    return user_id


class TestUsers:
    """Tests for user resolution."""

    @pytest.mark.asyncio
    async def test_get_or_create_is_stable(self, sql_store: SessionStore):
        first = await sql_store.get_or_create_user("auth0|abc")
        second = await sql_store.get_or_create_user("auth0|abc")

        assert first == second
        assert await sql_store.get_user_id("auth0|abc") == first
        assert await sql_store.get_user_id("auth0|nobody") is None


class TestSessions:
    """Tests for session rows."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, sql_store: SessionStore):
        user_id = await seed_session(sql_store)

        session = await sql_store.get_session("session-1")

        assert session is not None
        assert session.user_id == user_id
        assert session.sandbox_id is None
        assert session.status == "active"

    @pytest.mark.asyncio
    async def test_duplicate_session_id(self, sql_store: SessionStore):
        user_id = await seed_session(sql_store)

        with pytest.raises(InvalidRequestError, match="already exists"):
            await sql_store.create_session("session-1", user_id)

    @pytest.mark.asyncio
    async def test_set_and_clear_sandbox_id(self, sql_store: SessionStore):
        await seed_session(sql_store)

        await sql_store.set_sandbox_id("session-1", "sbx-1")
        assert (await sql_store.get_session("session-1")).sandbox_id == "sbx-1"

        await sql_store.set_sandbox_id("session-1", None)
        assert (await sql_store.get_session("session-1")).sandbox_id is None

    @pytest.mark.asyncio
    async def test_latest_session_by_creation_time(self, sql_store: SessionStore):
        user_id = await sql_store.get_or_create_user("auth0|owner")
        clock = frozen_clock(BASE_TIME + timedelta(minutes=5), BASE_TIME)
        try:
            # Inserted first but created later
            await sql_store.create_session("newer", user_id)
            await sql_store.create_session("older", user_id)
        finally:
            clock.stop()

        latest = await sql_store.get_latest_session(user_id)

        assert latest is not None
        assert latest.session_id == "newer"

    @pytest.mark.asyncio
    async def test_latest_session_scoped_to_user(self, sql_store: SessionStore):
        await seed_session(sql_store)
        stranger = await sql_store.get_or_create_user("auth0|stranger")

        assert await sql_store.get_latest_session(stranger) is None


class TestEvents:
    """Tests for event rows and their ordering."""

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_insertion_order(self, sql_store: SessionStore):
        await seed_session(sql_store)
        clock = frozen_clock(*([BASE_TIME] * 5))
        try:
            appended = [
                await sql_store.append_event("session-1", "step", {"i": i}) for i in range(5)
            ]
        finally:
            clock.stop()

        events = await sql_store.list_events("session-1")

        assert [e.id for e in events] == [e.id for e in appended]
        assert [e.event_data["i"] for e in events] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_ordered_by_timestamp_before_id(self, sql_store: SessionStore):
        await seed_session(sql_store)
        clock = frozen_clock(BASE_TIME + timedelta(seconds=1), BASE_TIME)
        try:
            await sql_store.append_event("session-1", "late", {})
            await sql_store.append_event("session-1", "early", {})
        finally:
            clock.stop()

        events = await sql_store.list_events("session-1")

        assert [e.event_type for e in events] == ["early", "late"]

    @pytest.mark.asyncio
    async def test_ids_increase(self, sql_store: SessionStore):
        await seed_session(sql_store)

        first = await sql_store.append_event("session-1", "a", {})
        second = await sql_store.append_event("session-1", "b", {})

        assert second.id > first.id

    @pytest.mark.asyncio
    async def test_event_data_round_trip(self, sql_store: SessionStore):
        await seed_session(sql_store)
        data = {
            "sandbox_id": "sbx-1",
            "ok": False,
            "reason": None,
            "usage": {"input_tokens": 1_000_000, "cache_read_input_tokens": 0},
            "tags": ["metro", "reload"],
            "note": "héllo ✓",
        }

        await sql_store.append_event("session-1", "metro_reload", data)
        events = await sql_store.list_events("session-1")

        assert events[0].event_data == data

    @pytest.mark.asyncio
    async def test_list_scoped_to_session(self, sql_store: SessionStore):
        user_id = await seed_session(sql_store)
        await sql_store.create_session("session-2", user_id)
        await sql_store.append_event("session-1", "a", {})
        await sql_store.append_event("session-2", "b", {})

        events = await sql_store.list_events("session-2")

        assert [e.event_type for e in events] == ["b"]

    @pytest.mark.asyncio
    async def test_append_to_unknown_session_raises_storage_error(self, sql_store: SessionStore):
        with pytest.raises(StorageError, match="append_event"):
            await sql_store.append_event("no-such-session", "note", {})

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from psycopg import errors as pg_errors

from meetgrid.db import core
from meetgrid.db.events import PostgresEventStore
from meetgrid.errors import ConflictError, NotFoundError, PersistenceError
from meetgrid.models.events import StoredEvent, StoredResponse, TimezoneRef

NOW = "2025-03-01T00:00:00+00:00"


def _event(event_id="evt"):
    return StoredEvent(
        id=event_id,
        name="Planning",
        selected_dates=["2025-03-03"],
        start_time="9:00 AM",
        end_time="10:00 AM",
        timezone=TimezoneRef(value="UTC", label="UTC"),
        time_slots=["9:00 AM"],
        created_at=NOW,
    )


class MockAsyncCursor:

    def __init__(self, rows=None):
        self.rows = rows or []

    async def fetchone(self):
        if self.rows:
            return self.rows[0]
        return None


class MockAsyncConnection:

    def __init__(self, cursor_results=None, error=None):
        self.cursor_results = cursor_results or []
        self.error = error
        self.executed = []
        self.transactions = 0
        self._call_index = 0

    async def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.split()), params))
        if self.error is not None:
            raise self.error
        if self._call_index < len(self.cursor_results):
            result = self.cursor_results[self._call_index]
            self._call_index += 1
            return MockAsyncCursor(result)
        return MockAsyncCursor([])

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield


def patch_connection(conn):
    calls = []

    @asynccontextmanager
    async def fake_get_connection(autocommit=True):
        calls.append(autocommit)
        yield conn

    patcher = patch("meetgrid.db.events._get_connection", fake_get_connection)
    patcher.calls = calls
    return patcher


class TestPostgresEventStore:
    @pytest.mark.asyncio
    async def test_create_returns_row_id(self):
        conn = MockAsyncConnection([[(7,)]])
        with patch_connection(conn):
            event = await PostgresEventStore().create(_event())
        assert event.storage_id == "7"
        sql, params = conn.executed[0]
        assert sql.startswith("INSERT INTO meetgrid_events")
        assert params[0] == "evt"
        assert "storage_id" not in params[1].obj

    @pytest.mark.asyncio
    async def test_create_duplicate_conflicts(self):
        conn = MockAsyncConnection(error=pg_errors.UniqueViolation("duplicate key"))
        with patch_connection(conn):
            with pytest.raises(ConflictError):
                await PostgresEventStore().create(_event())

    @pytest.mark.asyncio
    async def test_driver_error_is_persistence_error(self):
        conn = MockAsyncConnection(error=pg_errors.OperationalError("connection lost"))
        with patch_connection(conn):
            with pytest.raises(PersistenceError):
                await PostgresEventStore().get("evt")

    @pytest.mark.asyncio
    async def test_get_missing(self):
        with patch_connection(MockAsyncConnection([[]])):
            assert await PostgresEventStore().get("evt") is None

    @pytest.mark.asyncio
    async def test_get_parses_document(self):
        document = _event().model_dump(mode="json", exclude={"storage_id"})
        with patch_connection(MockAsyncConnection([[(3, document)]])):
            event = await PostgresEventStore().get("evt")
        assert event.id == "evt"
        assert event.storage_id == "3"

    @pytest.mark.asyncio
    async def test_update_locks_row_and_writes_back(self):
        document = _event().model_dump(mode="json", exclude={"storage_id"})
        conn = MockAsyncConnection([[(3, document)], []])
        patcher = patch_connection(conn)

        def add_sam(event):
            event.responses["sam"] = StoredResponse(name="Sam", created_at=NOW, updated_at=NOW)

        with patcher:
            event = await PostgresEventStore().update("evt", add_sam)

        assert patcher.calls == [False]
        assert conn.transactions == 1
        assert "FOR UPDATE" in conn.executed[0][0]
        update_sql, params = conn.executed[1]
        assert update_sql.startswith("UPDATE meetgrid_events")
        assert params[1] == 1
        assert event.version == 1
        assert "sam" in params[0].obj["responses"]

    @pytest.mark.asyncio
    async def test_update_missing(self):
        conn = MockAsyncConnection([[]])
        with patch_connection(conn):
            with pytest.raises(NotFoundError):
                await PostgresEventStore().update("evt", lambda event: None)
        assert len(conn.executed) == 1

    @pytest.mark.asyncio
    async def test_ping(self):
        with patch_connection(MockAsyncConnection()):
            assert await PostgresEventStore().ping() is True
        with patch_connection(MockAsyncConnection(error=pg_errors.OperationalError("down"))):
            assert await PostgresEventStore().ping() is False


class TestGetConnection:
    """Test pooled connection checkout."""

    @pytest.mark.asyncio
    async def test_requires_initialized_pool(self):
        with patch.object(core, "_pool", None):
            with pytest.raises(RuntimeError, match="not initialized"):
                async with core._get_connection():
                    pass

    @pytest.mark.asyncio
    async def test_switches_autocommit_for_transactions(self):
        conn = MagicMock()
        conn.autocommit = True
        conn.set_autocommit = AsyncMock()

        @asynccontextmanager
        async def connection():
            yield conn

        pool = MagicMock()
        pool.connection = connection
        with patch.object(core, "_pool", pool):
            async with core._get_connection(autocommit=False) as checked_out:
                assert checked_out is conn
            conn.set_autocommit.assert_awaited_once_with(False)

            conn.set_autocommit.reset_mock()
            async with core._get_connection():
                pass
            conn.set_autocommit.assert_not_awaited()

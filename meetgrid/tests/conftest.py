import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import fakeredis
import fakeredis.aioredis as fake_aioredis
import pytest
from fastapi.testclient import TestClient

import meetgrid.lifespan as lifespan
from meetgrid.access import SessionTokens
from meetgrid.config import clear_settings_cache
from meetgrid.models.events import CreateEventRequest
from meetgrid.stores.redis_store import RedisEventStore

TEST_SECRET = "test-secret"


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def fake_redis():
    return fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def store(fake_redis):
    return RedisEventStore(fake_redis, prefix="test")


@pytest.fixture
def tokens():
    return SessionTokens(TEST_SECRET, ttl_seconds=3600)


@pytest.fixture
def event_payload():
    """Factory for a valid ``POST /events`` body; keyword overrides win."""

    def make(event_id="team-sync", **overrides):
        payload = {
            "id": event_id,
            "name": "Team sync",
            "selectedDates": ["2025-03-03", "2025-03-04"],
            "startTime": "9:00 AM",
            "endTime": "5:00 PM",
            "timezone": {"value": "America/New_York", "label": "Eastern Time (ET)"},
            "timeSlots": ["9:00 AM", "9:15 AM"],
        }
        payload.update(overrides)
        return payload

    return make


@pytest.fixture
def create_request(event_payload):
    def make(event_id="team-sync", **overrides):
        return CreateEventRequest.model_validate(event_payload(event_id, **overrides))

    return make


@pytest.fixture
def client(monkeypatch):
    server = fakeredis.FakeServer()

    def fake_redis_constructor(*_args, **_kwargs):
        fake = fake_aioredis.FakeRedis(server=server, decode_responses=True)
        return _AwaitableRedis(fake)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)
    monkeypatch.setenv("SESSION_SECRET", TEST_SECRET)
    clear_settings_cache()

    import meetgrid.main as main

    with TestClient(main.app) as c:
        yield c

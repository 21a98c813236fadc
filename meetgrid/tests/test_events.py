"""Tests for the event lifecycle and availability upserts."""

from datetime import date

import pytest

from meetgrid import access
from meetgrid import events as event_service
from meetgrid.errors import ConflictError, NotFoundError, ValidationError
from meetgrid.models.events import AvailabilityEntry, CreateEventRequest
from meetgrid.timegrid import generate_slots


def _keys(day="2025-03-03", start="9:00 AM", end="5:00 PM"):
    return generate_slots(date.fromisoformat(day), "America/New_York", start, end).keys()


def _entries(keys, day="2025-03-03", available=True):
    return [AvailabilityEntry(date=day, time=k, available=available) for k in keys]


class TestCreateEvent:
    """Test event creation and validation."""

    @pytest.mark.asyncio
    async def test_every_missing_field_reported(self, store):
        with pytest.raises(ValidationError) as exc_info:
            await event_service.create_event(store, CreateEventRequest())
        assert exc_info.value.fields == event_service.REQUIRED_FIELDS
        assert exc_info.value.detail.startswith("Missing required fields: id, name")

    @pytest.mark.asyncio
    async def test_timezone_needs_value_and_label(self, store, create_request):
        req = create_request(timezone={"value": "UTC"})
        with pytest.raises(ValidationError) as exc_info:
            await event_service.create_event(store, req)
        assert exc_info.value.fields == ["timezone"]

    @pytest.mark.asyncio
    async def test_invalid_values_reported_together(self, store, create_request):
        req = create_request(
            startTime="whenever",
            timezone={"value": "Mars/Olympus", "label": "Mars"},
            selectedDates=["03/04/2025"],
        )
        with pytest.raises(ValidationError) as exc_info:
            await event_service.create_event(store, req)
        assert exc_info.value.fields == ["selectedDates", "startTime", "timezone"]

    @pytest.mark.asyncio
    async def test_response_limit_must_be_positive(self, store, create_request):
        with pytest.raises(ValidationError) as exc_info:
            await event_service.create_event(store, create_request(responseLimit=0))
        assert exc_info.value.fields == ["responseLimit"]

    @pytest.mark.asyncio
    async def test_created_event_is_normalized(self, store, create_request):
        req = create_request(
            selectedDates=["2025-03-04T05:00:00.000Z", "2025-03-03", "2025-03-03"],
        )
        event = await event_service.create_event(store, req)
        assert event.selected_dates == ["2025-03-03", "2025-03-04"]
        assert len(event.time_slots) == 33
        assert event.time_slots[0] == "9:00 AM"
        assert event.storage_id is not None
        assert event.responses == {}

    @pytest.mark.asyncio
    async def test_duplicate_id_conflicts(self, store, create_request):
        await event_service.create_event(store, create_request("dup"))
        with pytest.raises(ConflictError):
            await event_service.create_event(store, create_request("dup"))


class TestLoadEvent:
    @pytest.mark.asyncio
    async def test_missing_id(self, store):
        with pytest.raises(ValidationError) as exc_info:
            await event_service.load_event(store, "")
        assert exc_info.value.detail == "Event ID is required"

    @pytest.mark.asyncio
    async def test_unknown_id(self, store):
        with pytest.raises(NotFoundError):
            await event_service.load_event(store, "nope")


class TestUpsertResponse:
    """Test wholesale replacement of one identity's availability."""

    @pytest.mark.asyncio
    async def test_replaces_availability_wholesale(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt"))
        await access.sign_in(store, tokens, "evt", "Sam")
        keys = _keys()

        event = await event_service.upsert_response(store, "evt", "Sam", _entries(keys[:4]))
        assert len(event.responses["sam"].availability) == 4
        assert event.responses["sam"].version == 1

        event = await event_service.upsert_response(store, "evt", "sam", _entries(keys[10:12]))
        saved = event.responses["sam"]
        assert [e.time for e in saved.availability] == keys[10:12]
        assert saved.version == 2
        assert all(e.timestamp for e in saved.availability)

    @pytest.mark.asyncio
    async def test_other_identities_untouched(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt"))
        await access.sign_in(store, tokens, "evt", "Sam")
        await access.sign_in(store, tokens, "evt", "Lee")
        keys = _keys()

        await event_service.upsert_response(store, "evt", "Lee", _entries(keys[:2]))
        event = await event_service.upsert_response(store, "evt", "Sam", _entries(keys[5:6]))
        assert len(event.responses["lee"].availability) == 2
        assert len(event.responses["sam"].availability) == 1

    @pytest.mark.asyncio
    async def test_duplicate_entries_last_wins(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt"))
        await access.sign_in(store, tokens, "evt", "Sam")
        key = _keys()[0]
        entries = [
            AvailabilityEntry(date="2025-03-03", time=key, available=True),
            AvailabilityEntry(date="2025-03-03", time=key, available=False),
        ]
        event = await event_service.upsert_response(store, "evt", "Sam", entries)
        saved = event.responses["sam"].availability
        assert len(saved) == 1
        assert saved[0].available is False

    @pytest.mark.asyncio
    async def test_keys_outside_grid_rejected(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt"))
        await access.sign_in(store, tokens, "evt", "Sam")
        good = _keys()[0]
        entries = [
            AvailabilityEntry(date="2025-03-03", time=good, available=True),
            AvailabilityEntry(date="2025-03-03", time="123", available=True),
            AvailabilityEntry(date="2025-03-09", time=good, available=True),
            AvailabilityEntry(date="not-a-date", time=good, available=True),
        ]
        with pytest.raises(ValidationError) as exc_info:
            await event_service.upsert_response(store, "evt", "Sam", entries)
        assert exc_info.value.fields == [
            "availability[1].time",
            "availability[2].time",
            "availability[3].date",
        ]
        event = await store.get("evt")
        assert event.responses["sam"].availability == []

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt"))
        await access.sign_in(store, tokens, "evt", "Sam")
        keys = _keys()

        await event_service.upsert_response(store, "evt", "Sam", _entries(keys[:1]), base_version=0)
        with pytest.raises(ConflictError) as exc_info:
            await event_service.upsert_response(store, "evt", "Sam", _entries(keys[1:2]), base_version=0)
        assert exc_info.value.context == {"expected_version": 0, "current_version": 1}

    @pytest.mark.asyncio
    async def test_unknown_identity(self, store, create_request):
        await event_service.create_event(store, create_request("evt"))
        with pytest.raises(NotFoundError):
            await event_service.upsert_response(store, "evt", "Ghost", [])


class TestPublicView:
    """Test the wire form of an event and response hiding."""

    @pytest.mark.asyncio
    async def test_summary_and_no_password_hashes(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt", responseLimit=5))
        await access.sign_in(store, tokens, "evt", "Sam", "pw", password_iterations=1000)

        out = await event_service.fetch_event(store, tokens, "evt")
        body = out.model_dump(by_alias=True)
        assert body["summary"] == "March 3-4, 2025 from 9:00 AM to 5:00 PM ET"
        assert body["responses"][0]["name"] == "Sam"
        assert "password_hash" not in body["responses"][0]
        assert "passwordHash" not in body["responses"][0]

    @pytest.mark.asyncio
    async def test_hidden_responses_pseudonymized(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt", hideResponses=True))
        await access.sign_in(store, tokens, "evt", "Sam")
        await access.sign_in(store, tokens, "evt", "Lee")
        await event_service.upsert_response(store, "evt", "Lee", _entries(_keys()[:2]), email="lee@example.com")

        as_sam = await event_service.fetch_event(store, tokens, "evt", viewer="Sam")
        names = sorted(r.name for r in as_sam.responses)
        alias = tokens.pseudonym("evt", "Lee")
        assert names == sorted(["Sam", alias])
        lee = next(r for r in as_sam.responses if r.name == alias)
        assert lee.email == ""
        assert len(lee.availability) == 2

        again = await event_service.fetch_event(store, tokens, "evt", viewer="Sam")
        assert alias in [r.name for r in again.responses]

        as_lee = await event_service.fetch_event(store, tokens, "evt", viewer="lee")
        own = next(r for r in as_lee.responses if r.name == "Lee")
        assert own.email == "lee@example.com"

    @pytest.mark.asyncio
    async def test_anonymous_viewer_sees_only_pseudonyms(self, store, tokens, create_request):
        await event_service.create_event(store, create_request("evt", hideResponses=True))
        await access.sign_in(store, tokens, "evt", "Sam")
        out = await event_service.fetch_event(store, tokens, "evt")
        assert [r.name for r in out.responses] == [tokens.pseudonym("evt", "Sam")]

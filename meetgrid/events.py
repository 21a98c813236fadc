"""Event lifecycle and per-identity availability records.

An event is created once; after that only its responses change. Each
response is replaced wholesale by its owner and never merged field by field.
"""

import logging
from datetime import UTC, date, datetime
from typing import Any

from meetgrid.access import SessionTokens
from meetgrid.errors import ConflictError, NotFoundError, ValidationError
from meetgrid.models.events import (
    AvailabilityEntry,
    CreateEventRequest,
    EventOut,
    ResponseOut,
    StoredEvent,
    TimezoneRef,
    normalize_name,
)
from meetgrid.stores.base import EventStore
from meetgrid.timegrid import (
    derive_time_slots,
    event_slot_keys,
    format_event_window,
    get_zone,
    parse_time_label,
)

logger = logging.getLogger("meetgrid.events")

REQUIRED_FIELDS = [
    "id",
    "name",
    "selectedDates",
    "startTime",
    "endTime",
    "timezone",
    "timeSlots",
]


def parse_event_date(value: str) -> date:
    """Accept ``2025-03-04`` or an ISO datetime; only the calendar date is kept."""
    return date.fromisoformat(value.strip()[:10])


def missing_fields(req: CreateEventRequest) -> list[str]:
    values: dict[str, Any] = {
        "id": req.id,
        "name": req.name,
        "selectedDates": req.selected_dates,
        "startTime": req.start_time,
        "endTime": req.end_time,
        "timezone": req.timezone,
        "timeSlots": req.time_slots,
    }
    missing = []
    for field in REQUIRED_FIELDS:
        value = values[field]
        if field == "timezone":
            tz = value or {}
            if not tz.get("value") or not tz.get("label"):
                missing.append(field)
        elif not value or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


def _invalid_fields(req: CreateEventRequest) -> tuple[list[str], list[date]]:
    invalid = []
    dates: list[date] = []
    try:
        dates = sorted({parse_event_date(d) for d in req.selected_dates})
    except ValueError:
        invalid.append("selectedDates")
    for field, label in (("startTime", req.start_time), ("endTime", req.end_time)):
        try:
            parse_time_label(label)
        except ValueError:
            invalid.append(field)
    try:
        get_zone(str(req.timezone["value"]))
    except ValueError:
        invalid.append("timezone")
    for label in req.time_slots:
        try:
            parse_time_label(label)
        except ValueError:
            invalid.append("timeSlots")
            break
    if req.response_limit is not None and req.response_limit < 1:
        invalid.append("responseLimit")
    return invalid, dates


async def create_event(store: EventStore, req: CreateEventRequest) -> StoredEvent:
    missing = missing_fields(req)
    if missing:
        raise ValidationError.for_fields(missing)
    invalid, dates = _invalid_fields(req)
    if invalid:
        raise ValidationError.for_fields(invalid, detail=f"Invalid fields: {', '.join(invalid)}")

    event = StoredEvent(
        id=req.id.strip(),
        name=req.name.strip(),
        selected_dates=[d.isoformat() for d in dates],
        start_time=req.start_time,
        end_time=req.end_time,
        timezone=TimezoneRef(value=req.timezone["value"], label=req.timezone["label"]),
        time_slots=derive_time_slots(req.start_time, req.end_time),
        response_limit=req.response_limit,
        hide_responses=req.hide_responses,
        require_email=req.require_email,
        created_at=datetime.now(UTC).isoformat(),
    )
    event = await store.create(event)
    logger.info(
        "Created event id=%s dates=%d slots=%d limit=%s",
        event.id,
        len(event.selected_dates),
        len(event.time_slots),
        event.response_limit,
    )
    return event


async def load_event(store: EventStore, event_id: str | None) -> StoredEvent:
    if not event_id:
        raise ValidationError.for_fields(["id"], detail="Event ID is required")
    event = await store.get(event_id)
    if event is None:
        raise NotFoundError(detail="Event not found", event_id=event_id)
    return event


def redact(event: StoredEvent, tokens: SessionTokens, viewer: str | None = None) -> StoredEvent:
    """Copy of ``event`` as ``viewer`` may see it.

    With ``hide_responses`` set, every response the viewer does not own gets
    a stable pseudonym instead of its name and loses its email, and is keyed
    by that pseudonym so name filters cannot probe for real names.
    Availability is left as is.
    """
    if not event.hide_responses:
        return event
    viewer_key = normalize_name(viewer) if viewer else None
    responses = {}
    for key, response in event.responses.items():
        if key == viewer_key:
            responses[key] = response
        else:
            alias = tokens.pseudonym(event.id, response.name)
            responses[normalize_name(alias)] = response.model_copy(update={"name": alias, "email": ""})
    return event.model_copy(update={"responses": responses})


def to_public(event: StoredEvent, tokens: SessionTokens, viewer: str | None = None) -> EventOut:
    """Wire form of an event as seen by ``viewer``. Password hashes never leave the server."""
    event = redact(event, tokens, viewer)
    responses = [
        ResponseOut(
            name=response.name,
            email=response.email,
            availability=response.availability,
            version=response.version,
            created_at=response.created_at,
            updated_at=response.updated_at,
        )
        for response in event.responses.values()
    ]
    return EventOut(
        id=event.id,
        name=event.name,
        selected_dates=event.selected_dates,
        start_time=event.start_time,
        end_time=event.end_time,
        timezone=event.timezone,
        time_slots=event.time_slots,
        response_limit=event.response_limit,
        hide_responses=event.hide_responses,
        require_email=event.require_email,
        responses=responses,
        version=event.version,
        created_at=event.created_at,
        storage_id=event.storage_id,
        summary=format_event_window(event.dates, event.start_time, event.end_time, event.timezone.label),
    )


async def fetch_event(
    store: EventStore,
    tokens: SessionTokens,
    event_id: str | None,
    viewer: str | None = None,
) -> EventOut:
    event = await load_event(store, event_id)
    return to_public(event, tokens, viewer)


def _normalize_entries(event: StoredEvent, entries: list[AvailabilityEntry]) -> list[AvailabilityEntry]:
    """Drop duplicate keys (last wins) and reject keys outside the event grid."""
    grid = event_slot_keys(event.dates, event.timezone.value, event.start_time, event.end_time)
    now = datetime.now(UTC).isoformat()
    merged: dict[tuple[str, str], AvailabilityEntry] = {}
    bad = []
    for i, entry in enumerate(entries):
        try:
            day = parse_event_date(entry.date).isoformat()
        except ValueError:
            bad.append(f"availability[{i}].date")
            continue
        if entry.time not in grid.get(day, ()):
            bad.append(f"availability[{i}].time")
            continue
        merged[(day, entry.time)] = AvailabilityEntry(
            date=day,
            time=entry.time,
            available=entry.available,
            timestamp=entry.timestamp or now,
        )
    if bad:
        raise ValidationError.for_fields(bad, detail="Availability entries outside the event grid")
    return list(merged.values())


async def upsert_response(
    store: EventStore,
    event_id: str,
    identity: str,
    entries: list[AvailabilityEntry],
    email: str | None = None,
    base_version: int | None = None,
) -> StoredEvent:
    """Replace ``identity``'s whole availability list.

    ``base_version`` is the response version the client last saw; when it
    is given and the stored response has moved on, the write is refused so
    that a second tab cannot silently overwrite the first.
    """

    def replace(event: StoredEvent) -> None:
        response = event.find_response(identity)
        if response is None:
            raise NotFoundError(detail="No response for this identity; sign in again", identity=identity)
        if base_version is not None and base_version != response.version:
            raise ConflictError(
                detail="Your availability was changed elsewhere; reload and try again",
                expected_version=base_version,
                current_version=response.version,
            )
        response.availability = _normalize_entries(event, entries)
        if email is not None:
            response.email = email
        response.version += 1
        response.updated_at = datetime.now(UTC).isoformat()

    event = await store.update(event_id, replace)
    logger.info("Upserted availability event=%s entries=%d", event_id, len(entries))
    return event

"""Consensus over the slot grid.

Views are recomputed from the stored responses on every read. Slot keys are
absolute instants, so the viewer timezone only changes labels, never which
responses line up.
"""

from collections.abc import Iterable

from meetgrid.errors import NotFoundError
from meetgrid.models.events import StoredEvent, StoredResponse, normalize_name
from meetgrid.models.views import (
    AvailableParticipant,
    BestTimeRange,
    BestTimes,
    BestTimesStatus,
    Bucket,
    DaySummary,
    EveryoneView,
    PersonalView,
    SlotSummary,
)
from meetgrid.timegrid import SLOT_STEP, Slot, format_time_label, generate_slots

MAJORITY = 0.51

NO_AVAILABILITY_MESSAGE = "No availability has been added to this event yet."
NO_MAJORITY_MESSAGE = "No timeframe works for the majority of people."


def bucket_for(count: int, total: int) -> Bucket:
    if total <= 0 or count <= 0:
        return Bucket.NONE
    ratio = count / total
    if ratio >= 1:
        return Bucket.FULL
    if ratio >= 0.75:
        return Bucket.HIGH
    if ratio >= 0.5:
        return Bucket.MEDIUM
    return Bucket.LOW


def _available_index(response: StoredResponse) -> dict[tuple[str, str], str | None]:
    return {(e.date, e.time): e.timestamp for e in response.availability if e.available}


def _select(event: StoredEvent, selected: Iterable[str] | None) -> list[StoredResponse]:
    wanted = {normalize_name(n) for n in selected or () if n and n.strip()}
    if not wanted:
        return list(event.responses.values())
    return [r for key, r in event.responses.items() if key in wanted]


def _grid(event: StoredEvent, viewer_timezone: str | None):
    for day in event.dates:
        yield day.isoformat(), generate_slots(
            day, event.timezone.value, event.start_time, event.end_time, viewer_timezone
        )


def personal_view(event: StoredEvent, identity: str) -> PersonalView:
    response = event.find_response(identity)
    if response is None:
        raise NotFoundError(detail="No response for this identity", identity=identity)
    selected: dict[str, dict[str, bool]] = {}
    for entry in response.availability:
        selected.setdefault(entry.date, {})[entry.time] = entry.available
    return PersonalView(
        event_id=event.id,
        name=response.name,
        availability=response.availability,
        selected=selected,
    )


def everyone_view(
    event: StoredEvent,
    viewer_timezone: str | None = None,
    selected: Iterable[str] | None = None,
) -> EveryoneView:
    """Per-slot counts and buckets, optionally over a subset of identities."""
    responses = _select(event, selected)
    indexes = [(r, _available_index(r)) for r in responses]
    total = len(responses)
    days = []
    for day, grid in _grid(event, viewer_timezone):
        slots = []
        for slot in grid:
            available = [
                AvailableParticipant(name=r.name, email=r.email, timestamp=index[(day, slot.key)])
                for r, index in indexes
                if (day, slot.key) in index
            ]
            count = len(available)
            slots.append(
                SlotSummary(
                    key=slot.key,
                    label=slot.label,
                    count=count,
                    total=total,
                    ratio=count / total if total else 0.0,
                    bucket=bucket_for(count, total),
                    available=available,
                )
            )
        days.append(DaySummary(date=day, slots=slots))
    return EveryoneView(
        event_id=event.id,
        timezone=viewer_timezone or event.timezone.value,
        total=total,
        days=days,
    )


def _merge_ranges(day: str, qualifying: list[tuple[Slot, int]], total: int) -> list[BestTimeRange]:
    ranges: list[BestTimeRange] = []
    prev: Slot | None = None
    for slot, count in qualifying:
        current = ranges[-1] if ranges else None
        if (
            current is not None
            and prev is not None
            and current.available == count
            and slot.instant.timestamp() - prev.instant.timestamp() == SLOT_STEP.total_seconds()
        ):
            current.end_key = slot.key
            current.end_time = format_time_label(slot.end)
        else:
            ranges.append(
                BestTimeRange(
                    date=day,
                    start_time=slot.label,
                    end_time=format_time_label(slot.end),
                    start_key=slot.key,
                    end_key=slot.key,
                    available=count,
                    total=total,
                )
            )
        prev = slot
    return ranges


def best_times(event: StoredEvent, viewer_timezone: str | None = None) -> BestTimes:
    """Contiguous ranges where at least 51% of all identities are available.

    A change in the available count starts a new range even when both sides
    qualify. The end label is the end of the last slot.
    """
    responses = list(event.responses.values())
    indexes = [_available_index(r) for r in responses]
    if not any(indexes):
        return BestTimes(status=BestTimesStatus.NO_AVAILABILITY, message=NO_AVAILABILITY_MESSAGE)

    total = len(responses)
    ranges: list[BestTimeRange] = []
    for day, grid in _grid(event, viewer_timezone):
        qualifying = []
        for slot in grid:
            count = sum(1 for index in indexes if (day, slot.key) in index)
            if count / total >= MAJORITY:
                qualifying.append((slot, count))
        ranges.extend(_merge_ranges(day, qualifying, total))

    if not ranges:
        return BestTimes(status=BestTimesStatus.NO_MAJORITY, message=NO_MAJORITY_MESSAGE)
    return BestTimes(
        status=BestTimesStatus.FOUND,
        message=f"{len(ranges)} timeframe(s) work for the majority",
        ranges=ranges,
    )

"""Timezone-normalized 15-minute slot grid.

Every slot is an absolute instant. The slot key used in availability
entries is that instant as epoch milliseconds, so the same slot has the
same key whichever timezone a participant views the grid in.
"""

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

SLOT_MINUTES = 15
SLOT_STEP = timedelta(minutes=SLOT_MINUTES)

_LABEL_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([ap]m)?\s*$", re.IGNORECASE)
_TZ_ABBR_RE = re.compile(r"\(([^)]+)\)")


@lru_cache(maxsize=128)
def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone id, raising ValueError for unknown zones."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone: {name!r}") from e


def parse_time_label(label: str) -> tuple[int, int]:
    """Parse ``"9:00 AM"`` into ``(9, 0)``.

    The meridiem is optional (``"13:30"`` is read as 24-hour time).
    ``12 AM`` is midnight and ``12 PM`` is noon.
    """
    m = _LABEL_RE.match(label or "")
    if not m:
        raise ValueError(f"invalid time label: {label!r}")
    hour, minute = int(m.group(1)), int(m.group(2))
    meridiem = (m.group(3) or "").lower()
    if meridiem:
        if not 1 <= hour <= 12:
            raise ValueError(f"invalid time label: {label!r}")
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
    if hour > 23 or minute > 59:
        raise ValueError(f"invalid time label: {label!r}")
    return hour, minute


def format_time_label(value: datetime | time) -> str:
    hour12 = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour12}:{value.minute:02d} {suffix}"


def anchor(day: date, label: str, zone: ZoneInfo) -> datetime:
    """Pin a wall-clock label to ``day`` in ``zone``."""
    hour, minute = parse_time_label(label)
    return datetime.combine(day, time(hour, minute), tzinfo=zone)


def slot_key(instant: datetime) -> str:
    return str(round(instant.timestamp() * 1000))


def instant_from_key(key: str) -> datetime:
    return datetime.fromtimestamp(int(key) / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class Slot:
    instant: datetime
    label: str

    @property
    def key(self) -> str:
        return slot_key(self.instant)

    @property
    def end(self) -> datetime:
        """Instant the slot ends, in the same zone as ``instant``."""
        return (self.instant.astimezone(timezone.utc) + SLOT_STEP).astimezone(self.instant.tzinfo)


class SlotGrid:
    """Lazy, restartable sequence of slots between two instants (inclusive).

    Iterating twice yields the same slots; nothing is materialized until
    iteration.
    """

    def __init__(self, start: datetime, end: datetime, viewer_zone: ZoneInfo) -> None:
        self.start = start.astimezone(timezone.utc)
        self.end = end.astimezone(timezone.utc)
        self.viewer_zone = viewer_zone

    def __iter__(self) -> Iterator[Slot]:
        current = self.start
        while current <= self.end:
            local = current.astimezone(self.viewer_zone)
            yield Slot(instant=local, label=format_time_label(local))
            current += SLOT_STEP

    def __len__(self) -> int:
        if self.end < self.start:
            return 0
        return (self.end - self.start) // SLOT_STEP + 1

    def keys(self) -> list[str]:
        return [slot.key for slot in self]

    def labels(self) -> list[str]:
        return [slot.label for slot in self]

    def __repr__(self) -> str:
        return f"SlotGrid(start={self.start.isoformat()}, end={self.end.isoformat()}, slots={len(self)})"


def generate_slots(
    day: date,
    event_timezone: str,
    start_label: str,
    end_label: str,
    viewer_timezone: str | None = None,
) -> SlotGrid:
    """Build the slot grid for one event date.

    The window is anchored in the event timezone and rendered in the viewer
    timezone (the event timezone when not given). An end before the start
    means the window crosses midnight, so the end moves to the next day. An
    end equal to the start is a single-slot window.
    """
    event_zone = get_zone(event_timezone)
    viewer_zone = get_zone(viewer_timezone) if viewer_timezone else event_zone
    start = anchor(day, start_label, event_zone)
    end = anchor(day, end_label, event_zone)
    if end < start:
        end = anchor(day + timedelta(days=1), end_label, event_zone)
    return SlotGrid(start, end, viewer_zone)


def derive_time_slots(start_label: str, end_label: str) -> list[str]:
    """Wall-clock labels for a window, used to fill an event's ``timeSlots``."""
    start_h, start_m = parse_time_label(start_label)
    end_h, end_m = parse_time_label(end_label)
    start = start_h * 60 + start_m
    end = end_h * 60 + end_m
    if end < start:
        end += 24 * 60
    labels = []
    for minutes in range(start, end + 1, SLOT_MINUTES):
        minutes %= 24 * 60
        labels.append(format_time_label(time(minutes // 60, minutes % 60)))
    return labels


def event_slot_keys(
    dates: Iterable[date],
    event_timezone: str,
    start_label: str,
    end_label: str,
) -> dict[str, set[str]]:
    """Valid slot keys per ISO event date."""
    return {
        day.isoformat(): set(generate_slots(day, event_timezone, start_label, end_label).keys())
        for day in dates
    }


def format_event_window(
    dates: Iterable[date],
    start_label: str,
    end_label: str,
    timezone_label: str,
) -> str:
    """Summarize an event window, e.g. ``"March 3-5, 2025 from 9:00 AM to 5:00 PM ET"``.

    Consecutive dates within one month collapse into a range; the year is
    printed only where it changes.
    """
    days = sorted(set(dates))
    if not days:
        return ""

    runs: list[tuple[date, date]] = []
    for day in days:
        if runs and day - runs[-1][1] == timedelta(days=1) and day.month == runs[-1][1].month:
            runs[-1] = (runs[-1][0], day)
        else:
            runs.append((day, day))

    months: dict[tuple[int, int], list[str]] = {}
    for first, last in runs:
        text = str(first.day) if first == last else f"{first.day}-{last.day}"
        months.setdefault((first.year, first.month), []).append(text)

    keys = list(months)
    parts = []
    for i, (year, month) in enumerate(keys):
        text = f"{date(year, month, 1).strftime('%B')} {' and '.join(months[(year, month)])}"
        is_last = i == len(keys) - 1
        if is_last or keys[i + 1][0] != year:
            text = f"{text}, {year}"
        parts.append(text)

    m = _TZ_ABBR_RE.search(timezone_label)
    abbr = m.group(1) if m else timezone_label
    return f"{' and '.join(parts)} from {start_label} to {end_label} {abbr}"

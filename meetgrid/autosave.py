"""Coalesce rapid availability edits into single writes.

Toggles update local state synchronously and (re)arm a debounce timer; the
write happens once the timer runs out. A drag gesture collects many slot
changes without arming the timer and writes immediately when it ends.
Tearing the coordinator down before the timer fires drops the pending write.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from meetgrid.config import get_settings
from meetgrid.models.events import AvailabilityEntry

logger = logging.getLogger("meetgrid.autosave")

Selections = dict[str, dict[str, bool]]
SaveFn = Callable[[list[AvailabilityEntry]], Awaitable[Any]]


class GestureState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"


@dataclass(frozen=True)
class Gesture:
    state: GestureState = GestureState.IDLE
    value: bool | None = None


class AutosaveCoordinator:
    """Single-writer coalescing queue for one participant's grid.

    Edits must be made from inside a running event loop. ``save`` receives
    the whole snapshot every time; failures go to ``on_error`` once and are
    not retried.
    """

    def __init__(
        self,
        save: SaveFn,
        delay: float | None = None,
        on_error: Callable[[Exception], None] | None = None,
        selections: Selections | None = None,
    ) -> None:
        self._save = save
        self._delay = get_settings().autosave.debounce_sec if delay is None else delay
        self._on_error = on_error
        self._selections: Selections = {d: dict(slots) for d, slots in (selections or {}).items()}
        self._gesture = Gesture()
        self._timer: asyncio.Task | None = None
        self._dirty = False
        self._closed = False

    @property
    def selections(self) -> Selections:
        return {d: dict(slots) for d, slots in self._selections.items()}

    @property
    def gesture(self) -> Gesture:
        return self._gesture

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def is_selected(self, day: str, key: str) -> bool:
        return self._selections.get(day, {}).get(key, False)

    def _set(self, day: str, key: str, value: bool) -> None:
        if self._closed:
            raise RuntimeError("autosave coordinator is closed")
        self._selections.setdefault(day, {})[key] = value
        self._dirty = True

    def toggle(self, day: str, key: str) -> bool:
        value = not self.is_selected(day, key)
        self._set(day, key, value)
        self._schedule()
        return value

    def begin_gesture(self, day: str, key: str) -> bool:
        """Start a drag on a slot; every slot it crosses gets the inverse of this one."""
        value = not self.is_selected(day, key)
        self._cancel_timer()
        self._set(day, key, value)
        self._gesture = Gesture(GestureState.SELECTING, value)
        return value

    def extend_gesture(self, day: str, key: str) -> None:
        if self._gesture.state is not GestureState.SELECTING:
            return
        self._set(day, key, self._gesture.value)

    async def end_gesture(self) -> None:
        if self._gesture.state is not GestureState.SELECTING:
            return
        self._gesture = Gesture()
        await self.flush()

    def load(self, selections: Selections) -> None:
        """Replace the whole grid, e.g. with an imported calendar."""
        if self._closed:
            raise RuntimeError("autosave coordinator is closed")
        self._selections = {d: dict(slots) for d, slots in selections.items()}
        self._dirty = True
        self._schedule()

    def snapshot(self) -> list[AvailabilityEntry]:
        now = datetime.now(UTC).isoformat()
        return [
            AvailabilityEntry(date=day, time=key, available=value, timestamp=now)
            for day, slots in self._selections.items()
            for key, value in slots.items()
        ]

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _schedule(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._write_later())

    async def _write_later(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        await self._write()

    async def flush(self) -> None:
        """Write now, skipping whatever is left of the debounce window."""
        self._cancel_timer()
        await self._write()

    def cancel(self) -> None:
        """Drop the pending write; local edits since the last save are lost."""
        if self._dirty:
            logger.info("dropping unsaved availability changes")
        self._cancel_timer()
        self._dirty = False

    def close(self) -> None:
        self.cancel()
        self._gesture = Gesture()
        self._closed = True

    async def _write(self) -> None:
        if not self._dirty:
            return
        entries = self.snapshot()
        self._dirty = False
        try:
            await self._save(entries)
        except Exception as e:
            logger.warning("autosave failed entries=%d err=%r", len(entries), e)
            if self._on_error is not None:
                self._on_error(e)
            return
        logger.debug("autosaved entries=%d", len(entries))

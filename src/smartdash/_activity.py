"""Bounded activity history.

Human-readable events derived from applied messages ("Bulb turned ON",
"Device went offline", ...), kept newest-first and capped so the
oldest entries silently fall off.

Storage key::

    activity-log   ← list of {"timestamp", "category", "message"}
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

from smartdash._persistence import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "activity-log"
DEFAULT_CAPACITY = 50


class ActivityCategory(StrEnum):
    """What kind of change an activity event describes."""

    MOTION = "motion"
    BULB = "bulb"
    FAN = "fan"
    COLOR = "color"
    MODE = "mode"
    SPEED = "speed"
    STATUS = "status"


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """Immutable activity log entry."""

    timestamp: float
    category: ActivityCategory
    message: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityEvent:
        return cls(
            timestamp=float(data["timestamp"]),
            category=ActivityCategory(data["category"]),
            message=str(data["message"]),
        )


class ActivityLog:
    """Newest-first append log with a fixed capacity.

    Index 0 is always the most recent event.  When a *store* is given
    the log is saved after every append and :meth:`load` restores it.
    """

    def __init__(
        self,
        *,
        capacity: int = DEFAULT_CAPACITY,
        store: KeyValueStore | None = None,
    ) -> None:
        if capacity < 1:
            msg = f"capacity must be >= 1, got {capacity}"
            raise ValueError(msg)
        self._events: deque[ActivityEvent] = deque(maxlen=capacity)
        self._store = store

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def append(self, event: ActivityEvent) -> None:
        """Add *event* as the newest entry, dropping the oldest if full."""
        self._events.appendleft(event)
        logger.info("Activity: %s", event.message)
        self._save()

    def record(
        self,
        category: ActivityCategory,
        message: str,
        timestamp: float,
    ) -> ActivityEvent:
        """Build, append and return a new event."""
        event = ActivityEvent(timestamp=timestamp, category=category, message=message)
        self.append(event)
        return event

    @property
    def events(self) -> list[ActivityEvent]:
        """Events newest-first."""
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ActivityEvent]:
        return iter(self._events)

    def clear(self) -> None:
        self._events.clear()
        self._save()

    # -- Persistence --------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory log with the stored one, if any."""
        if self._store is None:
            return
        records = self._store.load(STORAGE_KEY, [])
        events: list[ActivityEvent] = []
        for record in records:
            try:
                events.append(ActivityEvent.from_dict(record))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping invalid activity record: %r", record)
        self._events.clear()
        # Stored newest-first; extend keeps that order and honours capacity.
        self._events.extend(events[: self.capacity])

    def _save(self) -> None:
        if self._store is not None:
            self._store.save(STORAGE_KEY, [e.to_dict() for e in self._events])

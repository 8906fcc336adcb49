"""Notification centre: preference filtering, history and sinks.

The reconciler and the temperature threshold check produce abstract
``(title, body, category)`` notifications.  The centre decides whether
the user wants them, keeps a bounded newest-first history with read
markers, and hands accepted notifications to pluggable sinks.  Actual
delivery (screen popup, OS notification, push) is a sink's business.

Storage keys::

    notification-history       ← list of NotificationRecord dicts
    notification-preferences   ← NotificationPreferences dict
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ValidationError

from smartdash._persistence import KeyValueStore
from smartdash._state import parse_number

logger = logging.getLogger(__name__)

HISTORY_KEY = "notification-history"
PREFERENCES_KEY = "notification-preferences"
HISTORY_CAPACITY = 50


class NotificationCategory(StrEnum):
    MOTION = "motion"
    TEMPERATURE = "temperature"
    DEVICE = "device"


@dataclass(frozen=True, slots=True)
class Notification:
    """A notification ready to be shown to the user."""

    title: str
    body: str
    category: NotificationCategory


@dataclass(frozen=True, slots=True)
class NotificationRecord:
    """History entry for a delivered notification."""

    id: str
    timestamp: float
    title: str
    body: str
    category: NotificationCategory
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationRecord:
        return cls(
            id=str(data["id"]),
            timestamp=float(data["timestamp"]),
            title=str(data["title"]),
            body=str(data["body"]),
            category=NotificationCategory(data["category"]),
            read=bool(data.get("read", False)),
        )


class NotificationPreferences(BaseModel):
    """Which notifications the user wants, and the temperature thresholds."""

    motion: bool = True
    temperature_high: bool = True
    temperature_high_threshold: float = 30.0
    temperature_low: bool = True
    temperature_low_threshold: float = 15.0
    device_state_changes: bool = True


NotificationSink = Callable[[Notification], None]
"""Callable that delivers a notification outside the core."""


def log_sink(notification: Notification) -> None:
    """Default sink: write the notification to the log."""
    logger.info(
        "Notification [%s] %s: %s",
        notification.category,
        notification.title,
        notification.body,
    )


def _format_number(value: float) -> str:
    return f"{value:g}"


class NotificationCenter:
    """Filters, records and fans out notifications."""

    def __init__(
        self,
        *,
        store: KeyValueStore | None = None,
        preferences: NotificationPreferences | None = None,
        sinks: list[NotificationSink] | None = None,
        capacity: int = HISTORY_CAPACITY,
    ) -> None:
        self._store = store
        self._preferences = preferences or NotificationPreferences()
        self._sinks: list[NotificationSink] = list(sinks or [])
        self._capacity = capacity
        self._history: list[NotificationRecord] = []

    # -- Preferences ----------------------------------------------------------

    @property
    def preferences(self) -> NotificationPreferences:
        return self._preferences

    def update_preferences(self, **changes: Any) -> NotificationPreferences:
        """Apply *changes* to the preferences and persist them.

        Raises:
            pydantic.ValidationError: If a value has the wrong type.
        """
        merged = self._preferences.model_dump() | changes
        self._preferences = NotificationPreferences.model_validate(merged)
        if self._store is not None:
            self._store.save(PREFERENCES_KEY, self._preferences.model_dump())
        return self._preferences

    # -- Sinks ----------------------------------------------------------------

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    # -- Notifying ------------------------------------------------------------

    def wants(self, notification: Notification) -> bool:
        """Whether the preferences allow *notification* through."""
        prefs = self._preferences
        match notification.category:
            case NotificationCategory.MOTION:
                return prefs.motion
            case NotificationCategory.DEVICE:
                return prefs.device_state_changes
            case NotificationCategory.TEMPERATURE:
                # Gated per direction in check_temperature().
                return True

    def notify(self, notification: Notification, now: float) -> NotificationRecord | None:
        """Record and deliver *notification* if the user wants it.

        Returns:
            The history record, or ``None`` when filtered out.
        """
        if not self.wants(notification):
            logger.debug("Notification suppressed by preferences: %s", notification.title)
            return None

        record = NotificationRecord(
            id=uuid.uuid4().hex,
            timestamp=now,
            title=notification.title,
            body=notification.body,
            category=notification.category,
        )
        self._history.insert(0, record)
        del self._history[self._capacity :]
        self._save_history()

        for sink in self._sinks:
            try:
                sink(notification)
            except Exception:
                logger.exception("Notification sink failed for %r", notification.title)
        return record

    def check_temperature(self, raw: str, now: float) -> list[NotificationRecord]:
        """Raise high/low temperature alerts for the reading *raw*.

        Unparseable readings produce no alert.
        """
        temp = parse_number(raw)
        if temp is None:
            return []

        prefs = self._preferences
        alerts: list[Notification] = []
        if prefs.temperature_high and temp > prefs.temperature_high_threshold:
            threshold = _format_number(prefs.temperature_high_threshold)
            alerts.append(
                Notification(
                    title="High Temperature Alert",
                    body=(
                        f"Temperature is {_format_number(temp)}°C, "
                        f"above threshold of {threshold}°C"
                    ),
                    category=NotificationCategory.TEMPERATURE,
                ),
            )
        if prefs.temperature_low and temp < prefs.temperature_low_threshold:
            threshold = _format_number(prefs.temperature_low_threshold)
            alerts.append(
                Notification(
                    title="Low Temperature Alert",
                    body=(
                        f"Temperature is {_format_number(temp)}°C, "
                        f"below threshold of {threshold}°C"
                    ),
                    category=NotificationCategory.TEMPERATURE,
                ),
            )

        records = [self.notify(alert, now) for alert in alerts]
        return [r for r in records if r is not None]

    # -- History --------------------------------------------------------------

    @property
    def history(self) -> list[NotificationRecord]:
        """History newest-first."""
        return list(self._history)

    @property
    def unread_count(self) -> int:
        return sum(1 for record in self._history if not record.read)

    def mark_read(self, notification_id: str) -> bool:
        """Mark one history entry as read.  Unknown ids are ignored."""
        for index, record in enumerate(self._history):
            if record.id == notification_id:
                if not record.read:
                    self._history[index] = replace(record, read=True)
                    self._save_history()
                return True
        return False

    def clear(self) -> None:
        self._history.clear()
        self._save_history()

    # -- Persistence ----------------------------------------------------------

    def load(self) -> None:
        """Restore preferences and history from the store, if any."""
        if self._store is None:
            return

        stored_prefs = self._store.load(PREFERENCES_KEY, None)
        if stored_prefs is not None:
            try:
                self._preferences = NotificationPreferences.model_validate(stored_prefs)
            except ValidationError:
                logger.warning("Ignoring invalid stored notification preferences")

        history: list[NotificationRecord] = []
        for item in self._store.load(HISTORY_KEY, []):
            try:
                history.append(NotificationRecord.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping invalid notification record: %r", item)
        self._history = history[: self._capacity]

    def _save_history(self) -> None:
        if self._store is not None:
            self._store.save(HISTORY_KEY, [r.to_dict() for r in self._history])

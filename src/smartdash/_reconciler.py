"""Reconciler — applies routed telemetry to the device state.

For every inbound message the reconciler:

1. refreshes ``last_seen`` and marks the device online (for any topic,
   routed or not),
2. asks the :class:`~smartdash._router.TopicRouter` for a
   :class:`~smartdash._router.TopicUpdate`,
3. writes the delta into the :class:`~smartdash._state.DeviceStateStore`,
4. appends the activity event and forwards the notification hint.

The reconciler is synchronous and does no I/O; it must only be called
from the dashboard's single consumer task.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from smartdash._activity import ActivityEvent, ActivityLog
from smartdash._notifications import Notification
from smartdash._router import TopicRouter
from smartdash._state import DeviceStateStore

logger = logging.getLogger(__name__)

NotificationHook = Callable[[Notification, float], object]


@dataclass(frozen=True, slots=True)
class Reconciliation:
    """What one message did to the device state."""

    topic: str
    routed: bool
    changed: frozenset[str]
    event: ActivityEvent | None = None
    notification: Notification | None = None

    @property
    def state_changed(self) -> bool:
        return bool(self.changed)


class Reconciler:
    """Turns (topic, payload) pairs into state, activity and notifications."""

    def __init__(
        self,
        *,
        router: TopicRouter,
        store: DeviceStateStore,
        activity: ActivityLog,
        notify: NotificationHook | None = None,
    ) -> None:
        self._router = router
        self._store = store
        self._activity = activity
        self._notify = notify

    def apply(self, topic: str, payload: str, now: float) -> Reconciliation:
        """Apply one inbound message received at *now*."""
        self._store.mark_seen(now)

        update = self._router.route(topic, payload, self._store.state, now)
        if update is None:
            return Reconciliation(topic=topic, routed=False, changed=frozenset())

        changed = self._store.apply(update.delta)

        if update.event is not None:
            self._activity.append(update.event)
        if update.notification is not None and self._notify is not None:
            self._notify(update.notification, now)

        return Reconciliation(
            topic=topic,
            routed=True,
            changed=changed,
            event=update.event,
            notification=update.notification,
        )

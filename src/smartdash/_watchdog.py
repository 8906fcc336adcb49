"""Liveness watchdog.

The device never announces that it is going away; it just stops
talking.  The watchdog runs on a fixed period, independent of message
arrival, and demotes the device to offline once nothing has been heard
for ``offline_threshold`` seconds.

Edge behaviour:

- online → offline: ``online`` becomes False and exactly one
  "Device went offline" activity event is appended.
- offline → offline, online → online: nothing.
- offline → online: never done here.  The reconciler marks the device
  online the moment a message arrives, and no event is logged for it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from smartdash._activity import ActivityCategory, ActivityLog
from smartdash._clock import ClockPort
from smartdash._state import DeviceStateStore

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "Device went offline"
DEFAULT_INTERVAL = 5.0
DEFAULT_THRESHOLD = 60.0


class LivenessWatchdog:
    """Periodic offline detector for the device state store."""

    def __init__(
        self,
        *,
        store: DeviceStateStore,
        activity: ActivityLog,
        clock: ClockPort,
        interval: float = DEFAULT_INTERVAL,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        self._store = store
        self._activity = activity
        self._clock = clock
        self._interval = interval
        self._threshold = threshold
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_fresh(self, now: float) -> bool:
        """Whether a message was seen within the threshold window."""
        last_seen = self._store.state.last_seen
        return last_seen is not None and (now - last_seen) < self._threshold

    def check(self, now: float | None = None) -> bool:
        """Run one liveness check.

        Returns:
            True when this check took the device offline.
        """
        if now is None:
            now = self._clock.now()
        state = self._store.state
        if not state.online or self.is_fresh(now):
            return False

        self._store.mark_offline()
        self._activity.record(ActivityCategory.STATUS, OFFLINE_MESSAGE, now)
        logger.warning(
            "No message for %.0fs, device marked offline",
            self._threshold,
        )
        return True

    # -- Lifecycle ----------------------------------------------------------

    def start(self, schedule: Callable[[], object] | None = None) -> None:
        """Start the periodic tick task.

        Args:
            schedule: Called on every tick instead of :meth:`check`.
                The dashboard passes a function that enqueues the tick
                so the check runs on its consumer task.
        """
        if self.running:
            logger.debug("LivenessWatchdog.start() called while already running")
            return
        tick = schedule if schedule is not None else self.check
        self._task = asyncio.create_task(self._loop(tick), name="liveness-watchdog")

    async def stop(self) -> None:
        """Cancel the tick task.  Idempotent."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _loop(self, tick: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(self._interval)
            tick()

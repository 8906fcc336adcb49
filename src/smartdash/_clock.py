"""Wall-clock port and system adapter.

Provides ClockPort (Protocol) and SystemClock.

**Why wall-clock and not monotonic?** Every timestamp the core records
(``last_seen``, ``last_motion_time``, activity and notification
entries) is shown to a human and persisted across restarts, and time
triggers compare against the local hour of day.  Only epoch seconds
satisfy all three.  Elapsed-time checks (the liveness watchdog) take
differences between two readings of the same clock.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Clock returning epoch seconds.

    The default implementation wraps ``time.time()``.  Tests inject a
    deterministic fake clock for reproducible timing.
    """

    def now(self) -> float:
        """Return the current time as seconds since the Unix epoch."""
        ...


class SystemClock:
    """Production clock wrapping ``time.time()``.

    Satisfies :class:`ClockPort` via structural subtyping.
    """

    def now(self) -> float:
        """Return the current time as seconds since the Unix epoch."""
        return time.time()

"""Device state record and its versioned owner.

:class:`DeviceState` is the single mutable snapshot of the device.  It
is created once with sentinel "unknown" values and mutated in place for
the lifetime of the process, exclusively through
:class:`DeviceStateStore`.

Sensor readings (temperature, humidity, fan speed) keep the device's
raw text.  Consumers that need a number go through
:func:`parse_number`, which reports unparseable text as ``None``
instead of raising.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

UNKNOWN_READING = "--"
"""Sentinel stored in sensor fields until the device reports a value."""

DEFAULT_COLOR = "#FFFFFF"


class Mode(StrEnum):
    """Device operating mode."""

    AUTO = "AUTO"
    MANUAL = "MANUAL"


class Motion(StrEnum):
    """Motion sensor reading."""

    DETECTED = "DETECTED"
    NONE = "NONE"


def parse_number(raw: str) -> float | None:
    """Parse a numeric-as-text reading.

    Returns ``None`` for anything that is not a finite number, so
    ``"abc"``, ``"--"``, ``"nan"`` and ``"inf"`` all count as
    unparseable.
    """
    try:
        value = float(raw.strip())
    except (AttributeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


@dataclass
class DeviceState:
    """Current in-memory snapshot of the device.

    ``online`` is written by the reconciler (on receipt) and the
    liveness watchdog (on expiry) only.
    """

    temperature: str = UNKNOWN_READING
    humidity: str = UNKNOWN_READING
    fan_speed: str = UNKNOWN_READING
    bulb_on: bool = False
    fan_on: bool = False
    color: str = DEFAULT_COLOR
    mode: Mode = Mode.AUTO
    motion: Motion = Motion.NONE
    last_motion_time: float | None = None
    last_seen: float | None = None
    online: bool = False

    @property
    def fan_speed_percent(self) -> int | None:
        """Fan speed as an integer percent, or ``None`` if unparseable."""
        value = parse_number(self.fan_speed)
        return None if value is None else int(value)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain, JSON-compatible dictionary."""
        data = dataclasses.asdict(self)
        data["mode"] = self.mode.value
        data["motion"] = self.motion.value
        return data


DEVICE_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "temperature",
        "humidity",
        "fan_speed",
        "bulb_on",
        "fan_on",
        "color",
        "mode",
        "motion",
        "last_motion_time",
    },
)
"""Fields reported by the device.  ``last_seen`` and ``online`` are
liveness bookkeeping and do not count as a state change."""


class DeviceStateStore:
    """Owner of the canonical :class:`DeviceState`.

    ``version`` increments each time a device attribute actually
    changes value, which lets callers tell a real state change apart
    from a repeated reading.
    """

    def __init__(self, state: DeviceState | None = None) -> None:
        self._state = state if state is not None else DeviceState()
        self._version = 0

    @property
    def state(self) -> DeviceState:
        """The live state record.  Treat as read-only outside the store."""
        return self._state

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> DeviceState:
        """Return an independent copy of the current state."""
        return dataclasses.replace(self._state)

    def apply(self, delta: dict[str, Any]) -> frozenset[str]:
        """Write *delta* into the state.

        Returns:
            Names of the device attributes whose value changed.

        Raises:
            KeyError: If *delta* names an unknown field.
        """
        changed: set[str] = set()
        for name, value in delta.items():
            if name not in DEVICE_ATTRIBUTES:
                msg = f"Unknown device attribute {name!r}"
                raise KeyError(msg)
            if getattr(self._state, name) != value:
                setattr(self._state, name, value)
                changed.add(name)
        if changed:
            self._version += 1
            logger.debug("Device state v%d: %s", self._version, sorted(changed))
        return frozenset(changed)

    def mark_seen(self, now: float) -> None:
        """Record message receipt: refresh ``last_seen`` and go online."""
        self._state.last_seen = now
        self._state.online = True

    def mark_offline(self) -> None:
        self._state.online = False

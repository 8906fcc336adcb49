"""Telemetry topic routing.

Maps each inbound telemetry topic to a pure decode+apply function.
A decoder receives the raw payload, the current (read-only) device
state and the receipt time, and returns a :class:`TopicUpdate`
describing what should change.  Decoders never mutate anything, so
each one can be tested in isolation.

Topic layout::

    {prefix}/temp        → temperature (raw text)
    {prefix}/hum         → humidity (raw text)
    {prefix}/fan/speed   → fan speed percent (raw text)
    {prefix}/bulb        → "ON" / anything else
    {prefix}/fan         → "ON" / anything else
    {prefix}/color       → "#RRGGBB"
    {prefix}/mode        → "AUTO" / "MANUAL"
    {prefix}/motion      → "DETECTED" / "NONE"

Unknown topics are ignored.  Malformed payloads never escape as
exceptions: numeric readings and colors are stored verbatim, invalid
enum tokens leave the field untouched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from smartdash._activity import ActivityCategory, ActivityEvent
from smartdash._errors import DecodeError
from smartdash._notifications import Notification, NotificationCategory
from smartdash._state import DeviceState, Mode, Motion, parse_number

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9A-F]{6}$")

ON_TOKEN = "ON"


@dataclass(frozen=True, slots=True)
class TopicUpdate:
    """Outcome of decoding one message.

    ``delta`` maps device attribute names to their new values;
    ``event`` and ``notification`` are optional by-products.
    """

    delta: dict[str, object] = field(default_factory=dict)
    event: ActivityEvent | None = None
    notification: Notification | None = None


Decoder = Callable[[str, DeviceState, float], TopicUpdate]
"""Pure function ``(payload, state, now) -> TopicUpdate``."""


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------


def decode_temperature(payload: str, state: DeviceState, now: float) -> TopicUpdate:
    return TopicUpdate(delta={"temperature": payload})


def decode_humidity(payload: str, state: DeviceState, now: float) -> TopicUpdate:
    return TopicUpdate(delta={"humidity": payload})


def decode_fan_speed(payload: str, state: DeviceState, now: float) -> TopicUpdate:
    """Store the fan speed as reported.  The device is trusted on read."""
    if parse_number(payload) is None:
        logger.debug("Non-numeric fan speed stored verbatim: %r", payload)
    return TopicUpdate(
        delta={"fan_speed": payload},
        event=ActivityEvent(now, ActivityCategory.SPEED, f"Fan speed set to {payload}%"),
    )


def _switch_decoder(
    attribute: str,
    label: str,
    body_subject: str,
    category: ActivityCategory,
) -> Decoder:
    def decode(payload: str, state: DeviceState, now: float) -> TopicUpdate:
        return TopicUpdate(
            delta={attribute: payload == ON_TOKEN},
            event=ActivityEvent(now, category, f"{label} turned {payload}"),
            notification=Notification(
                title=f"{label} {payload}",
                body=f"{body_subject} has been turned {payload.lower()}",
                category=NotificationCategory.DEVICE,
            ),
        )

    decode.__name__ = f"decode_{attribute}"
    return decode


decode_bulb = _switch_decoder("bulb_on", "Bulb", "RGB bulb", ActivityCategory.BULB)
decode_fan = _switch_decoder("fan_on", "Fan", "Fan", ActivityCategory.FAN)


def decode_color(payload: str, state: DeviceState, now: float) -> TopicUpdate:
    """Store ``#RRGGBB`` uppercased; anything else verbatim."""
    color = payload.strip().upper()
    if not _COLOR_RE.match(color):
        logger.warning("Color payload is not #RRGGBB, storing verbatim: %r", payload)
        color = payload
    return TopicUpdate(
        delta={"color": color},
        event=ActivityEvent(now, ActivityCategory.COLOR, f"Color changed to {color}"),
    )


def decode_mode(payload: str, state: DeviceState, now: float) -> TopicUpdate:
    try:
        mode = Mode(payload.strip().upper())
    except ValueError:
        msg = f"Unknown mode {payload!r}"
        raise DecodeError(msg, payload=payload) from None
    return TopicUpdate(
        delta={"mode": mode},
        event=ActivityEvent(now, ActivityCategory.MODE, f"Mode changed to {mode}"),
    )


def decode_motion(payload: str, state: DeviceState, now: float) -> TopicUpdate:
    """Track motion; ``last_motion_time`` moves only on entering DETECTED."""
    try:
        motion = Motion(payload.strip().upper())
    except ValueError:
        msg = f"Unknown motion reading {payload!r}"
        raise DecodeError(msg, payload=payload) from None

    if motion == Motion.NONE:
        return TopicUpdate(
            delta={"motion": motion},
            event=ActivityEvent(now, ActivityCategory.MOTION, "Motion cleared"),
        )

    delta: dict[str, object] = {"motion": motion}
    notification = None
    if state.motion != Motion.DETECTED:
        delta["last_motion_time"] = now
        notification = Notification(
            title="Motion Detected",
            body="Movement detected in your smart home",
            category=NotificationCategory.MOTION,
        )
    return TopicUpdate(
        delta=delta,
        event=ActivityEvent(now, ActivityCategory.MOTION, "Motion detected!"),
        notification=notification,
    )


TELEMETRY_DECODERS: Mapping[str, Decoder] = {
    "temp": decode_temperature,
    "hum": decode_humidity,
    "fan/speed": decode_fan_speed,
    "bulb": decode_bulb,
    "fan": decode_fan,
    "color": decode_color,
    "mode": decode_mode,
    "motion": decode_motion,
}
"""Topic suffix → decoder.  Suffixes are relative to the topic prefix."""


def join_topic(prefix: str, suffix: str) -> str:
    """Join *prefix* and *suffix*, tolerating an empty prefix."""
    return f"{prefix}/{suffix}" if prefix else suffix


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


class TopicRouter:
    """Dispatch table from full topic name to decoder.

    Lookups are exact; there is no wildcard matching.
    """

    def __init__(
        self,
        *,
        topic_prefix: str,
        decoders: Mapping[str, Decoder] | None = None,
    ) -> None:
        self._topic_prefix = topic_prefix
        table = TELEMETRY_DECODERS if decoders is None else decoders
        self._table: dict[str, Decoder] = {
            join_topic(topic_prefix, suffix): decoder for suffix, decoder in table.items()
        }

    @property
    def topic_prefix(self) -> str:
        return self._topic_prefix

    def decoder_for(self, topic: str) -> Decoder | None:
        return self._table.get(topic)

    def route(
        self,
        topic: str,
        payload: str,
        state: DeviceState,
        now: float,
    ) -> TopicUpdate | None:
        """Decode *payload* for *topic* against *state*.

        Returns:
            The update to apply, an empty update when the payload could
            not be decoded, or ``None`` for a topic with no decoder.
        """
        decoder = self._table.get(topic)
        if decoder is None:
            logger.debug("Ignoring message on unrouted topic %s", topic)
            return None
        try:
            return decoder(payload, state, now)
        except DecodeError as exc:
            logger.warning("Dropping undecodable payload on %s: %s", topic, exc)
            return TopicUpdate()

    @property
    def subscriptions(self) -> list[str]:
        """Topics to subscribe to, in table order."""
        return list(self._table)

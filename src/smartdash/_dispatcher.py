"""Action dispatcher — turns actions and user commands into publishes.

Topic layout::

    {prefix}/control/bulb        ← "ON" / "OFF"
    {prefix}/control/fan         ← "ON" / "OFF"
    {prefix}/control/fan/speed   ← "0".."100"
    {prefix}/control/color       ← "#RRGGBB"
    {prefix}/control/mode        ← "AUTO" / "MANUAL" / "TOGGLE"

Publication behaviour:

- **At most once** — nothing is retried, queued or de-duplicated here.
- **Rule actions are best-effort** — :meth:`ActionDispatcher.dispatch`
  logs a failed action and moves on to the next one.
- **User commands fail loudly** — they raise :class:`NotConnectedError`
  or :class:`CommandError` so the caller can tell the user.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from smartdash._errors import CommandError, NotConnectedError
from smartdash._mqtt import MqttPort
from smartdash._router import join_topic
from smartdash._rules import Action, ColorAction, FanSpeedAction, ModeAction, SwitchAction

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

TOGGLE = "TOGGLE"
MODE_TOKENS = frozenset({"AUTO", "MANUAL", TOGGLE})


def clamp_fan_speed(speed: int) -> int:
    """Clamp *speed* into the 0..100 percent domain."""
    return max(0, min(100, int(speed)))


def normalize_color(color: str) -> str:
    """Validate ``#RRGGBB`` and return it uppercased.

    Raises:
        CommandError: If *color* is not a 6-hex-digit color.
    """
    if not _COLOR_RE.match(color):
        msg = f"Invalid color {color!r}, expected #RRGGBB"
        raise CommandError(msg)
    return color.upper()


def _on_off(on: bool) -> str:
    return "ON" if on else "OFF"


class ActionDispatcher:
    """Publishes device commands through an :class:`MqttPort`."""

    def __init__(self, *, mqtt: MqttPort, topic_prefix: str) -> None:
        self._mqtt = mqtt
        self._topic_prefix = topic_prefix

    def control_topic(self, name: str) -> str:
        """Full control topic for *name* (e.g. ``"fan/speed"``)."""
        return join_topic(self._topic_prefix, f"control/{name}")

    # -- Translation --------------------------------------------------------

    def to_command(self, action: Action) -> tuple[str, str]:
        """Translate an action into ``(topic, payload)``.

        Raises:
            CommandError: If the action carries an invalid value.
        """
        match action:
            case SwitchAction(type=target, value=on):
                return self.control_topic(target), _on_off(on)
            case FanSpeedAction(value=speed):
                return self.control_topic("fan/speed"), str(clamp_fan_speed(speed))
            case ColorAction(value=color):
                return self.control_topic("color"), normalize_color(color)
            case ModeAction(value=mode):
                token = mode.strip().upper()
                if token not in MODE_TOKENS:
                    msg = f"Invalid mode {mode!r}"
                    raise CommandError(msg)
                return self.control_topic("mode"), token
        msg = f"Unsupported action {action!r}"
        raise CommandError(msg)

    # -- Rule actions -------------------------------------------------------

    async def dispatch(self, actions: Iterable[Action]) -> int:
        """Publish each action once, in order.

        Returns:
            The number of actions that were published.
        """
        published = 0
        for action in actions:
            try:
                topic, payload = self.to_command(action)
                await self._mqtt.publish(topic, payload)
            except (CommandError, NotConnectedError) as exc:
                logger.warning(
                    "Automation action %s dropped: %s",
                    action.type,
                    exc,
                    extra={"action": action.type},
                )
                continue
            logger.info(
                "Automation published %s → %s",
                topic,
                payload,
                extra={"topic": topic, "action": action.type},
            )
            published += 1
        return published

    # -- User commands ------------------------------------------------------

    async def _send(self, name: str, payload: str) -> None:
        topic = self.control_topic(name)
        await self._mqtt.publish(topic, payload)
        logger.info("Published %s → %s", topic, payload, extra={"topic": topic})

    async def set_bulb(self, on: bool) -> None:
        await self._send("bulb", _on_off(on))

    async def set_fan(self, on: bool) -> None:
        await self._send("fan", _on_off(on))

    async def set_fan_speed(self, speed: int) -> None:
        """Publish a fan speed, clamped to 0..100."""
        await self._send("fan/speed", str(clamp_fan_speed(speed)))

    async def set_color(self, color: str) -> None:
        """Publish a ``#RRGGBB`` color (uppercased).

        Raises:
            CommandError: If *color* is malformed; nothing is published.
        """
        await self._send("color", normalize_color(color))

    async def set_mode(self, mode: str) -> None:
        token = mode.strip().upper()
        if token not in MODE_TOKENS:
            msg = f"Invalid mode {mode!r}, expected one of {sorted(MODE_TOKENS)}"
            raise CommandError(msg)
        await self._send("mode", token)

    async def toggle_mode(self) -> None:
        await self._send("mode", TOGGLE)

"""Unit tests for smartdash._dispatcher — actions and user commands.

Test Techniques Used:
    - Boundary Value Analysis: fan speed clamping
    - Equivalence Partitioning: valid / invalid colors and modes
    - Specification-based Testing: control topic layout, action order
    - Error Guessing: publishing while disconnected
"""

from __future__ import annotations

import logging

import pytest

from smartdash._dispatcher import ActionDispatcher, clamp_fan_speed, normalize_color
from smartdash._errors import CommandError, NotConnectedError
from smartdash._mqtt import MockMqttClient
from smartdash._rules import ColorAction, FanSpeedAction, ModeAction, SwitchAction


@pytest.fixture
def dispatcher(mock_mqtt: MockMqttClient) -> ActionDispatcher:
    return ActionDispatcher(mqtt=mock_mqtt, topic_prefix="home")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestClampAndNormalize:
    """Technique: Boundary Value Analysis, Equivalence Partitioning."""

    @pytest.mark.parametrize(
        ("speed", "expected"),
        [(-5, 0), (0, 0), (60, 60), (100, 100), (150, 100)],
    )
    def test_clamp_fan_speed(self, speed: int, expected: int) -> None:
        assert clamp_fan_speed(speed) == expected

    def test_color_uppercased(self) -> None:
        assert normalize_color("#ff8800") == "#FF8800"

    @pytest.mark.parametrize("color", ["red", "#FFF", "FF0000", "#GG0000", "#FF00000"])
    def test_bad_color_rejected(self, color: str) -> None:
        with pytest.raises(CommandError):
            normalize_color(color)


# ---------------------------------------------------------------------------
# User commands
# ---------------------------------------------------------------------------


class TestUserCommands:
    """Technique: Specification-based Testing."""

    async def test_bulb_and_fan(
        self,
        dispatcher: ActionDispatcher,
        mock_mqtt: MockMqttClient,
    ) -> None:
        await dispatcher.set_bulb(True)
        await dispatcher.set_fan(False)
        assert mock_mqtt.get_messages_for("home/control/bulb") == ["ON"]
        assert mock_mqtt.get_messages_for("home/control/fan") == ["OFF"]

    @pytest.mark.parametrize(("speed", "payload"), [(150, "100"), (-5, "0"), (42, "42")])
    async def test_fan_speed_clamped(
        self,
        dispatcher: ActionDispatcher,
        mock_mqtt: MockMqttClient,
        speed: int,
        payload: str,
    ) -> None:
        await dispatcher.set_fan_speed(speed)
        assert mock_mqtt.get_messages_for("home/control/fan/speed") == [payload]

    async def test_color_uppercased(
        self,
        dispatcher: ActionDispatcher,
        mock_mqtt: MockMqttClient,
    ) -> None:
        await dispatcher.set_color("#00ff7f")
        assert mock_mqtt.get_messages_for("home/control/color") == ["#00FF7F"]

    async def test_invalid_color_publishes_nothing(
        self,
        dispatcher: ActionDispatcher,
        mock_mqtt: MockMqttClient,
    ) -> None:
        with pytest.raises(CommandError):
            await dispatcher.set_color("purple")
        assert mock_mqtt.publish_count == 0

    async def test_modes(
        self,
        dispatcher: ActionDispatcher,
        mock_mqtt: MockMqttClient,
    ) -> None:
        await dispatcher.set_mode("manual")
        await dispatcher.toggle_mode()
        assert mock_mqtt.get_messages_for("home/control/mode") == ["MANUAL", "TOGGLE"]

    async def test_invalid_mode_rejected(self, dispatcher: ActionDispatcher) -> None:
        with pytest.raises(CommandError):
            await dispatcher.set_mode("TURBO")

    async def test_not_connected_propagates(self) -> None:
        """User commands fail loudly so the caller can tell the user."""
        dispatcher = ActionDispatcher(
            mqtt=MockMqttClient(connected=False),
            topic_prefix="home",
        )
        with pytest.raises(NotConnectedError):
            await dispatcher.set_bulb(True)

    async def test_empty_prefix(self, mock_mqtt: MockMqttClient) -> None:
        dispatcher = ActionDispatcher(mqtt=mock_mqtt, topic_prefix="")
        await dispatcher.set_bulb(True)
        assert mock_mqtt.published[0][0] == "control/bulb"


# ---------------------------------------------------------------------------
# Rule actions
# ---------------------------------------------------------------------------


class TestDispatchActions:
    """Technique: Specification-based Testing, Error Guessing."""

    def test_to_command(self, dispatcher: ActionDispatcher) -> None:
        assert dispatcher.to_command(SwitchAction(type="fan", value=True)) == (
            "home/control/fan",
            "ON",
        )
        assert dispatcher.to_command(FanSpeedAction(value=250)) == (
            "home/control/fan/speed",
            "100",
        )
        assert dispatcher.to_command(ModeAction(value="auto")) == ("home/control/mode", "AUTO")

    async def test_publishes_in_order_once_each(
        self,
        dispatcher: ActionDispatcher,
        mock_mqtt: MockMqttClient,
    ) -> None:
        count = await dispatcher.dispatch(
            [
                SwitchAction(type="bulb", value=True),
                ColorAction(value="#ff0000"),
                FanSpeedAction(value=60),
            ],
        )

        assert count == 3
        assert [(t, p) for t, p, _r, _q in mock_mqtt.published] == [
            ("home/control/bulb", "ON"),
            ("home/control/color", "#FF0000"),
            ("home/control/fan/speed", "60"),
        ]

    async def test_invalid_action_skipped(
        self,
        dispatcher: ActionDispatcher,
        mock_mqtt: MockMqttClient,
    ) -> None:
        count = await dispatcher.dispatch(
            [ColorAction(value="nope"), SwitchAction(type="fan", value=False)],
        )
        assert count == 1
        assert mock_mqtt.get_messages_for("home/control/fan") == ["OFF"]

    async def test_disconnected_actions_dropped_not_raised(
        self,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        dispatcher = ActionDispatcher(
            mqtt=MockMqttClient(connected=False),
            topic_prefix="home",
        )
        count = await dispatcher.dispatch([SwitchAction(type="bulb", value=True)])
        assert count == 0
        assert "dropped" in caplog.text

    async def test_published_action_logged_with_topic(
        self,
        dispatcher: ActionDispatcher,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.INFO, logger="smartdash._dispatcher"):
            await dispatcher.dispatch([FanSpeedAction(value=40)])

        (record,) = caplog.records
        assert record.topic == "home/control/fan/speed"  # type: ignore[attr-defined]
        assert record.action == "fanSpeed"  # type: ignore[attr-defined]

"""Integration tests — full dashboard lifecycle.

Drives a Dashboard end to end through the mock broker: telemetry in,
state reconciled, rules fired, commands out, liveness expiry, and a
restart from files on disk.

Test Techniques Used:
    - Integration Testing: end-to-end lifecycle via DashboardHarness.
    - State-based Testing: verify published commands, activity log and
      notification history.
    - Round-trip Persistence: JsonFileStore survives a restart.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from smartdash import Dashboard, JsonFileStore, Mode, Motion
from smartdash.testing import DashboardHarness, FakeClock, MockMqttClient, make_settings

pytestmark = pytest.mark.integration


# ---------------------------------------------------------------------------
# TestFullLifecycle
# ---------------------------------------------------------------------------


class TestFullLifecycle:
    """A day in the life of one device.

    Technique: Integration Testing.
    """

    async def test_telemetry_rules_and_liveness(self) -> None:
        harness = DashboardHarness.create()
        dash = harness.dashboard
        dash.rules.add(
            "cool down",
            triggers=[{"type": "temperature", "condition": ">", "value": 30}],
            actions=[{"type": "fan", "value": True}, {"type": "fanSpeed", "value": 80}],
        )
        dash.rules.add(
            "intruder",
            triggers=[{"type": "motion"}],
            actions=[{"type": "color", "value": "#ff0000"}, {"type": "bulb", "value": True}],
        )

        async with dash:
            await harness.send("temp", "24.5")
            await harness.send("hum", "48")
            assert harness.mqtt.publish_count == 0

            harness.clock.advance(10)
            await harness.send("temp", "31")
            assert [(t, p) for t, p, _r, _q in harness.mqtt.published] == [
                ("home/control/fan", "ON"),
                ("home/control/fan/speed", "80"),
            ]

            # Device echoes the commanded state back.
            await harness.send("fan", "ON")
            await harness.send("fan/speed", "80")
            assert dash.snapshot().fan_on is True
            assert dash.snapshot().fan_speed_percent == 80

            harness.mqtt.published.clear()
            await harness.send("motion", "DETECTED")
            assert harness.mqtt.get_messages_for("home/control/color") == ["#FF0000"]

            await harness.send("mode", "MANUAL")
            await harness.send("motion", "NONE")

            # Silence long enough for the watchdog to give up.
            assert await harness.tick(61) is True
            snap = dash.snapshot()

        assert snap.online is False
        assert snap.mode is Mode.MANUAL
        assert snap.motion is Motion.NONE
        assert snap.last_motion_time == 1010.0
        assert snap.temperature == "31"

        messages = [e.message for e in dash.activity]
        assert messages[0] == "Device went offline"
        assert "Motion detected!" in messages
        assert "Mode changed to MANUAL" in messages
        assert "Fan speed set to 80%" in messages

        titles = [n.title for n in harness.delivered]
        assert titles == ["High Temperature Alert", "Fan ON", "Motion Detected"]

    async def test_user_commands_do_not_touch_state(self) -> None:
        harness = DashboardHarness.create()
        async with harness.dashboard:
            await harness.dashboard.set_bulb(True)
            await harness.dashboard.set_fan(True)
            await harness.dashboard.set_fan_speed(150)
            await harness.dashboard.set_color("#123abc")
            await harness.dashboard.set_mode("manual")
            await harness.dashboard.toggle_mode()

        assert [(t, p) for t, p, _r, _q in harness.mqtt.published] == [
            ("home/control/bulb", "ON"),
            ("home/control/fan", "ON"),
            ("home/control/fan/speed", "100"),
            ("home/control/color", "#123ABC"),
            ("home/control/mode", "MANUAL"),
            ("home/control/mode", "TOGGLE"),
        ]
        assert harness.dashboard.snapshot().bulb_on is False
        assert harness.dashboard.activity.events == []


# ---------------------------------------------------------------------------
# TestRestartFromDisk
# ---------------------------------------------------------------------------


class TestRestartFromDisk:
    """Rules, activity and notifications survive a process restart.

    Technique: Round-trip Persistence.
    """

    async def test_json_store_restart(self, tmp_path: Path) -> None:
        settings = make_settings()

        first = Dashboard(
            settings,
            mqtt=MockMqttClient(),
            clock=FakeClock(1000.0),
            store=JsonFileStore(tmp_path),
        )
        first.rules.add("night", triggers=[{"type": "time", "hour": 0}])
        first.notifications.update_preferences(motion=False)
        async with first:
            await first.handle_message("home/bulb", "ON")

        second = Dashboard(
            settings,
            mqtt=MockMqttClient(),
            clock=FakeClock(2000.0),
            store=JsonFileStore(tmp_path),
        )
        second.load()

        assert [r.name for r in second.rules.rules] == ["night"]
        assert second.notifications.preferences.motion is False
        assert [e.message for e in second.activity] == ["Bulb turned ON"]
        assert [n.title for n in second.notifications.history] == ["Bulb ON"]
        # Device state itself is never persisted.
        assert second.snapshot().bulb_on is False
        assert second.snapshot().online is False

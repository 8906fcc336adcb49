"""Unit tests for the smartdash top-level public API surface.

Test Techniques Used:
    - Specification-based Testing: ``__all__`` completeness against the
      documented public API contract.
    - Importability: Every name in ``__all__`` resolves to a real object
      via ``getattr``.
"""

from __future__ import annotations

import smartdash


class TestSmartdashPublicAPI:
    """All expected symbols are importable and listed in ``__all__``."""

    EXPECTED_NAMES = {
        # Version
        "__version__",
        # Dashboard
        "Dashboard",
        "run_dashboard",
        # State
        "DeviceState",
        "DeviceStateStore",
        "Mode",
        "Motion",
        # Activity
        "ActivityCategory",
        "ActivityEvent",
        "ActivityLog",
        # Ingestion
        "Reconciler",
        "Reconciliation",
        "TopicRouter",
        "TopicUpdate",
        "LivenessWatchdog",
        # Automation
        "ActionDispatcher",
        "AutomationRule",
        "ColorAction",
        "FanSpeedAction",
        "ModeAction",
        "MotionTrigger",
        "RuleBook",
        "SwitchAction",
        "ThresholdTrigger",
        "TimeTrigger",
        "evaluate",
        # Notifications
        "Notification",
        "NotificationCategory",
        "NotificationCenter",
        "NotificationPreferences",
        "NotificationRecord",
        # Persistence
        "JsonFileStore",
        "KeyValueStore",
        "MemoryStore",
        # Clock
        "ClockPort",
        "SystemClock",
        # Logging
        "JsonFormatter",
        "configure_logging",
        # MQTT
        "ConnectionState",
        "MessageCallback",
        "MockMqttClient",
        "MqttClient",
        "MqttLifecycle",
        "MqttMessageHandler",
        "MqttPort",
        # Errors
        "CommandError",
        "DashboardError",
        "DecodeError",
        "NotConnectedError",
        "SubscriptionError",
        # Settings
        "DashboardSettings",
        "LoggingSettings",
        "MqttSettings",
        "Settings",
    }

    def test_all_contains_expected_symbols(self) -> None:
        """``__all__`` matches the documented public API exactly."""
        assert set(smartdash.__all__) == self.EXPECTED_NAMES

    def test_all_symbols_importable(self) -> None:
        """Every name in ``__all__`` resolves on the package."""
        for name in smartdash.__all__:
            assert getattr(smartdash, name) is not None, name

    def test_version_is_string(self) -> None:
        assert isinstance(smartdash.__version__, str)
        assert smartdash.__version__

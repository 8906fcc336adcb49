"""smartdash.

Telemetry ingestion, device-state reconciliation and rule-based
automation for a single MQTT-connected device.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("smartdash")
except PackageNotFoundError:
    # Source checkout without installed metadata
    __version__ = "0.0.0+unknown"

from smartdash._activity import ActivityCategory, ActivityEvent, ActivityLog  # noqa: E402
from smartdash._clock import ClockPort, SystemClock  # noqa: E402
from smartdash._dashboard import Dashboard, run_dashboard  # noqa: E402
from smartdash._dispatcher import ActionDispatcher  # noqa: E402
from smartdash._errors import (  # noqa: E402
    CommandError,
    DashboardError,
    DecodeError,
    NotConnectedError,
    SubscriptionError,
)
from smartdash._logging import JsonFormatter, configure_logging  # noqa: E402
from smartdash._mqtt import (  # noqa: E402
    ConnectionState,
    MessageCallback,
    MockMqttClient,
    MqttClient,
    MqttLifecycle,
    MqttMessageHandler,
    MqttPort,
)
from smartdash._notifications import (  # noqa: E402
    Notification,
    NotificationCategory,
    NotificationCenter,
    NotificationPreferences,
    NotificationRecord,
)
from smartdash._persistence import JsonFileStore, KeyValueStore, MemoryStore  # noqa: E402
from smartdash._reconciler import Reconciler, Reconciliation  # noqa: E402
from smartdash._router import TopicRouter, TopicUpdate  # noqa: E402
from smartdash._rules import (  # noqa: E402
    AutomationRule,
    ColorAction,
    FanSpeedAction,
    ModeAction,
    MotionTrigger,
    RuleBook,
    SwitchAction,
    ThresholdTrigger,
    TimeTrigger,
    evaluate,
)
from smartdash._settings import (  # noqa: E402
    DashboardSettings,
    LoggingSettings,
    MqttSettings,
    Settings,
)
from smartdash._state import DeviceState, DeviceStateStore, Mode, Motion  # noqa: E402
from smartdash._watchdog import LivenessWatchdog  # noqa: E402

__all__ = [
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
]

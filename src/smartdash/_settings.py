"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Every variable carries the ``SMARTDASH_`` prefix and nested
models use ``__`` as the delimiter, e.g.
``SMARTDASH_MQTT__HOST=broker.local``.

The schema covers three concerns:

* **MQTT** — broker connection, reconnect period and topic layout.
* **Logging** — level, format, optional file sink, rotation.
* **Dashboard** — liveness watchdog timing, activity log capacity and
  where persisted state lives.

All durations are in **seconds**.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

# -------------------------------------------------------------------
# Sub-models (BaseModel, NOT BaseSettings; nested via composition)
# -------------------------------------------------------------------


class MqttSettings(BaseModel):
    """MQTT broker connection and topic configuration.

    Environment variables (with ``__`` nesting)::

        SMARTDASH_MQTT__HOST=broker.local
        SMARTDASH_MQTT__PORT=1883
        SMARTDASH_MQTT__USERNAME=user
        SMARTDASH_MQTT__PASSWORD=secret
        SMARTDASH_MQTT__TOPIC_PREFIX=home
    """

    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP address.",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=1883,
        description="MQTT broker port.",
    )
    username: str | None = Field(
        default=None,
        description="MQTT authentication username (optional).",
    )
    password: SecretStr | None = Field(
        default=None,
        description="MQTT authentication password (optional).",
    )
    client_id: str = Field(
        default="",
        description=(
            "MQTT client identifier. When empty, the dashboard "
            "auto-generates 'smartdash-{hex8}' at startup."
        ),
    )
    keepalive: Annotated[int, Field(ge=1)] = Field(
        default=30,
        description="Keepalive period in seconds sent to the broker.",
    )
    qos: Annotated[int, Field(ge=0, le=2)] = Field(
        default=1,
        description="QoS level used for subscriptions.",
    )
    reconnect_interval: Annotated[float, Field(gt=0)] = Field(
        default=1.0,
        description=(
            "Fixed delay in seconds between reconnect attempts after "
            "a connection loss.  The device is a single always-retry "
            "peer, so no backoff growth is applied."
        ),
    )
    topic_prefix: str = Field(
        default="home",
        description=(
            "Root prefix shared by the device's telemetry and control "
            "topics, e.g. 'home' → 'home/temp', 'home/control/bulb'."
        ),
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` (default) — structured JSON lines for log
      aggregators.
    - ``"text"`` — human-readable timestamped format for local
      development and direct terminal use.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description=(
            "Log output format. "
            "'json' emits structured JSON lines; "
            "'text' emits human-readable timestamped lines."
        ),
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description=(
            "Maximum log file size in megabytes before rotation. "
            "Only applies when ``file`` is set."
        ),
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


class DashboardSettings(BaseModel):
    """Liveness, history and persistence tuning.

    Environment variables::

        SMARTDASH_DASHBOARD__WATCHDOG_INTERVAL=5
        SMARTDASH_DASHBOARD__OFFLINE_THRESHOLD=60
        SMARTDASH_DASHBOARD__QUEUE_SIZE=1000
        SMARTDASH_DASHBOARD__STATE_DIR=/var/lib/smartdash
    """

    watchdog_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description="Seconds between liveness watchdog ticks.",
    )
    offline_threshold: Annotated[float, Field(gt=0)] = Field(
        default=60.0,
        description=(
            "Seconds of silence after which the device is considered offline."
        ),
    )
    activity_log_size: Annotated[int, Field(ge=1)] = Field(
        default=50,
        description="Maximum number of activity events kept in memory.",
    )
    queue_size: Annotated[int, Field(ge=1)] = Field(
        default=1000,
        description=(
            "Capacity of the inbound message queue.  Messages arriving "
            "while it is full are logged and dropped."
        ),
    )
    state_dir: str | None = Field(
        default=None,
        description=(
            "Directory for persisted rules, notification history and "
            "activity log.  ``None`` keeps everything in memory."
        ),
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for the smartdash core.

    Loaded from ``SMARTDASH_``-prefixed environment variables with the
    nested delimiter ``__`` and an optional ``.env`` file in the
    working directory.

    Example ``.env``::

        SMARTDASH_MQTT__HOST=broker.local
        SMARTDASH_MQTT__TOPIC_PREFIX=nikhil/home
        SMARTDASH_LOGGING__LEVEL=DEBUG
        SMARTDASH_LOGGING__FORMAT=text
    """

    model_config = SettingsConfigDict(
        env_prefix="SMARTDASH_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
    """``extra="ignore"`` lets a shared ``.env`` file carry variables
    for other services without failing validation here."""

    mqtt: MqttSettings = Field(
        default_factory=MqttSettings,
        description="MQTT broker connection settings.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
    dashboard: DashboardSettings = Field(
        default_factory=DashboardSettings,
        description="Watchdog, history and persistence settings.",
    )

"""Dashboard — composition root and single serialization point.

The :class:`Dashboard` wires the topic router, reconciler, state
store, activity log, liveness watchdog, rule book, notification centre
and action dispatcher around one MQTT port, then runs them on one
asyncio event loop.

Three independent event sources touch the device state: inbound
messages, watchdog ticks and user commands.  Inbound messages and
watchdog ticks are put on a single :class:`asyncio.Queue` and applied
one at a time by a consumer task, so state mutation is strictly
sequential.  The MQTT callback only enqueues, which keeps the
connection loop independent of how long processing takes.  The queue
is bounded; when it is full new items are logged and dropped.

Automation actions produced by the rule engine are handed to a second
task that publishes them, so a slow broker never holds up the next
telemetry message.  User commands never mutate state; they only
publish.

Typical usage::

    settings = Settings()
    async with Dashboard(settings, mqtt=MqttClient(settings=settings.mqtt)) as dash:
        await dash.set_bulb(True)
        ...
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import uuid
from dataclasses import dataclass
from datetime import datetime
from types import TracebackType
from typing import Self

from smartdash._activity import ActivityLog
from smartdash._clock import ClockPort, SystemClock
from smartdash._dispatcher import ActionDispatcher
from smartdash._mqtt import MqttClient, MqttLifecycle, MqttMessageHandler, MqttPort
from smartdash._notifications import NotificationCenter, NotificationSink, log_sink
from smartdash._persistence import JsonFileStore, KeyValueStore, MemoryStore
from smartdash._reconciler import Reconciler, Reconciliation
from smartdash._router import TopicRouter
from smartdash._rules import Action, RuleBook
from smartdash._settings import Settings
from smartdash._state import DeviceState, DeviceStateStore
from smartdash._watchdog import LivenessWatchdog

logger = logging.getLogger(__name__)

APP_NAME = "smartdash"

# ---------------------------------------------------------------------------
# Queue items
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Inbound:
    topic: str
    payload: str


@dataclass(frozen=True, slots=True)
class _WatchdogTick:
    pass


_TICK = _WatchdogTick()

_QueueItem = _Inbound | _WatchdogTick

# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class Dashboard:
    """Owns the device state and every component that reads or writes it."""

    def __init__(
        self,
        settings: Settings,
        *,
        mqtt: MqttPort,
        clock: ClockPort | None = None,
        store: KeyValueStore | None = None,
        notification_sinks: list[NotificationSink] | None = None,
    ) -> None:
        prefix = settings.mqtt.topic_prefix
        dash = settings.dashboard

        self._settings = settings
        self._mqtt = mqtt
        self._clock: ClockPort = clock if clock is not None else SystemClock()
        self._store: KeyValueStore = store if store is not None else MemoryStore()

        self.state = DeviceStateStore()
        self.activity = ActivityLog(capacity=dash.activity_log_size, store=self._store)
        self.notifications = NotificationCenter(
            store=self._store,
            sinks=notification_sinks if notification_sinks is not None else [log_sink],
        )
        self.rules = RuleBook(store=self._store)
        self.router = TopicRouter(topic_prefix=prefix)
        self.reconciler = Reconciler(
            router=self.router,
            store=self.state,
            activity=self.activity,
            notify=self.notifications.notify,
        )
        self.watchdog = LivenessWatchdog(
            store=self.state,
            activity=self.activity,
            clock=self._clock,
            interval=dash.watchdog_interval,
            threshold=dash.offline_threshold,
        )
        self.dispatcher = ActionDispatcher(mqtt=mqtt, topic_prefix=prefix)

        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue(maxsize=dash.queue_size)
        self._outbox: asyncio.Queue[list[Action]] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._publisher: asyncio.Task[None] | None = None
        self._callback_registered = False

    # -- Read access --------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def clock(self) -> ClockPort:
        return self._clock

    def snapshot(self) -> DeviceState:
        """Independent copy of the current device state."""
        return self.state.snapshot()

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    # -- Processing (consumer task only) ------------------------------------

    async def handle_message(self, topic: str, payload: str) -> Reconciliation:
        """Apply one inbound message and react to any state change."""
        now = self._clock.now()
        result = self.reconciler.apply(topic, payload, now)
        if result.state_changed:
            await self._on_state_change(result, now)
        return result

    def check_liveness(self) -> bool:
        """Run one watchdog check.  True when the device just went offline."""
        return self.watchdog.check(self._clock.now())

    async def _on_state_change(self, result: Reconciliation, now: float) -> None:
        if "temperature" in result.changed:
            self.notifications.check_temperature(self.state.state.temperature, now)

        actions = self.rules.evaluate(self.snapshot(), self._local_time(now))
        if actions:
            logger.debug("Queueing %d automation action(s)", len(actions))
            self._outbox.put_nowait(actions)

    @staticmethod
    def _local_time(now: float) -> datetime:
        return datetime.fromtimestamp(now).astimezone()

    async def _process(self, item: _QueueItem) -> None:
        match item:
            case _Inbound(topic=topic, payload=payload):
                await self.handle_message(topic, payload)
            case _WatchdogTick():
                self.check_liveness()

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._process(item)
            except Exception:
                logger.exception("Error processing %r", item)
            finally:
                self._queue.task_done()

    async def _publish_actions(self) -> None:
        while True:
            actions = await self._outbox.get()
            try:
                await self.dispatcher.dispatch(actions)
            except Exception:
                logger.exception("Error dispatching %d action(s)", len(actions))
            finally:
                self._outbox.task_done()

    # -- Event sources ------------------------------------------------------

    def _offer(self, item: _QueueItem) -> bool:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning(
                "Inbound queue full (%d items), dropped %r",
                self._queue.maxsize,
                item,
                extra={"topic": getattr(item, "topic", None)},
            )
            return False
        return True

    async def enqueue(self, topic: str, payload: str) -> None:
        """MQTT message callback: queue the message and return immediately."""
        self._offer(_Inbound(topic, payload))

    def schedule_tick(self) -> None:
        """Watchdog tick callback: queue a liveness check."""
        self._offer(_TICK)

    async def drain(self) -> None:
        """Wait until every queued item has been processed and published."""
        await self._queue.join()
        await self._outbox.join()

    # -- User commands ------------------------------------------------------
    # Publish only.  The device's telemetry echo is what changes state.

    async def set_bulb(self, on: bool) -> None:
        await self.dispatcher.set_bulb(on)

    async def set_fan(self, on: bool) -> None:
        await self.dispatcher.set_fan(on)

    async def set_fan_speed(self, speed: int) -> None:
        await self.dispatcher.set_fan_speed(speed)

    async def set_color(self, color: str) -> None:
        await self.dispatcher.set_color(color)

    async def set_mode(self, mode: str) -> None:
        await self.dispatcher.set_mode(mode)

    async def toggle_mode(self) -> None:
        await self.dispatcher.toggle_mode()

    # -- Lifecycle ----------------------------------------------------------

    def load(self) -> None:
        """Restore persisted rules, activity and notifications."""
        self.rules.load()
        self.activity.load()
        self.notifications.load()

    async def start(self) -> None:
        """Load state, subscribe, connect and start background tasks."""
        if self.running:
            logger.debug("Dashboard.start() called while already running")
            return
        self.load()

        if isinstance(self._mqtt, MqttMessageHandler) and not self._callback_registered:
            self._mqtt.on_message(self.enqueue)
            self._callback_registered = True
        for topic in self.router.subscriptions:
            await self._mqtt.subscribe(topic)
        if isinstance(self._mqtt, MqttLifecycle):
            await self._mqtt.start()

        self._consumer = asyncio.create_task(self._consume(), name="dashboard-consumer")
        self._publisher = asyncio.create_task(
            self._publish_actions(), name="dashboard-publisher"
        )
        self.watchdog.start(self.schedule_tick)
        logger.info(
            "Dashboard started (prefix=%r, %d rule(s))",
            self.router.topic_prefix,
            len(self.rules),
        )

    async def stop(self) -> None:
        """Tear down the watchdog, background tasks and connection.  Idempotent."""
        await self.watchdog.stop()
        for task in (self._consumer, self._publisher):
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._consumer = None
        self._publisher = None
        if isinstance(self._mqtt, MqttLifecycle):
            await self._mqtt.stop()
        logger.info("Dashboard stopped")

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run until *shutdown_event* is set, then shut down cleanly."""
        await self.start()
        try:
            await shutdown_event.wait()
        finally:
            await self.stop()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()


# ---------------------------------------------------------------------------
# Production wiring
# ---------------------------------------------------------------------------


def create_mqtt(settings: Settings) -> MqttClient:
    """Create the MQTT client, generating a client id when none is set."""
    mqtt_settings = settings.mqtt
    if not mqtt_settings.client_id:
        generated_id = f"{APP_NAME}-{uuid.uuid4().hex[:8]}"
        mqtt_settings = mqtt_settings.model_copy(
            update={"client_id": generated_id},
        )
    return MqttClient(settings=mqtt_settings)


def create_store(settings: Settings) -> KeyValueStore:
    """JSON files under ``dashboard.state_dir``, or memory when unset."""
    if settings.dashboard.state_dir is None:
        return MemoryStore()
    return JsonFileStore(settings.dashboard.state_dir)


def _install_signal_handlers(event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, event.set)


async def run_dashboard(
    settings: Settings,
    *,
    shutdown_event: asyncio.Event | None = None,
    mqtt: MqttPort | None = None,
    clock: ClockPort | None = None,
    store: KeyValueStore | None = None,
) -> None:
    """Build a :class:`Dashboard` from *settings* and run it to shutdown.

    Without an explicit *shutdown_event*, SIGTERM and SIGINT trigger
    shutdown.
    """
    if shutdown_event is None:
        shutdown_event = asyncio.Event()
        _install_signal_handlers(shutdown_event)

    dashboard = Dashboard(
        settings,
        mqtt=mqtt if mqtt is not None else create_mqtt(settings),
        clock=clock,
        store=store if store is not None else create_store(settings),
    )
    await dashboard.run(shutdown_event)
    logger.info("Shutdown complete")

"""MQTT client port and adapters (connection supervisor).

Provides MqttPort (Protocol) and two implementations:

- MqttClient — real aiomqtt-based client with a fixed-interval
  reconnect loop
- MockMqttClient — test double that records calls

Design decisions:

- aiomqtt imported lazily inside MqttClient._connection_loop() so the
  mock works without aiomqtt installed
- Subscriptions tracked internally and restored on every (re)connect;
  a failing subscription is logged and skipped, the session stays up
- publish() fails fast with NotConnectedError outside CONNECTED; there
  is no outbound queue
- MessageCallback dispatches (topic, payload) to registered handlers
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from types import TracebackType
from typing import Any, Protocol, Self, runtime_checkable

from smartdash._errors import NotConnectedError, SubscriptionError
from smartdash._settings import MqttSettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

MessageCallback = Callable[[str, str], Awaitable[None]]
"""Async callback receiving (topic, payload) for each inbound message."""

ConnectionCallback = Callable[[], Awaitable[None]]
"""Async callback fired on connect or disconnect."""


class ConnectionState(StrEnum):
    """Supervisor lifecycle.

    ``DISCONNECTED → CONNECTING → CONNECTED → RECONNECTING → CONNECTED``,
    and back to ``DISCONNECTED`` only when the client is stopped.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


# ---------------------------------------------------------------------------
# Ports (Protocols)
# ---------------------------------------------------------------------------


@runtime_checkable
class MqttPort(Protocol):
    """Port contract for MQTT publish/subscribe."""

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None: ...

    async def subscribe(self, topic: str) -> None: ...


@runtime_checkable
class MqttLifecycle(Protocol):
    """Adapters with a background connection to start and stop."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


@runtime_checkable
class MqttMessageHandler(Protocol):
    """Adapters that deliver inbound messages to callbacks."""

    def on_message(self, callback: MessageCallback) -> None: ...


async def _fire_all(callbacks: list[ConnectionCallback], event: str) -> None:
    for cb in callbacks:
        try:
            await cb()
        except Exception:
            logger.exception("Error in %s callback", event)


# ---------------------------------------------------------------------------
# Mock / test-double adapter
# ---------------------------------------------------------------------------


@dataclass
class MockMqttClient:
    """In-memory test double that records MQTT interactions.

    Records publishes and subscriptions for assertion.  Supports
    callback registration, simulated message delivery via
    ``deliver()``, a disconnected mode in which ``publish()`` raises
    :class:`NotConnectedError`, and topics whose subscription fails.
    """

    published: list[tuple[str, str, bool, int]] = field(
        default_factory=list,
    )
    subscriptions: list[str] = field(default_factory=list)
    failed_subscriptions: list[str] = field(default_factory=list)
    failing_topics: set[str] = field(default_factory=set)
    connected: bool = True
    _callbacks: list[MessageCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )

    # -- MqttPort methods --------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None:
        """Record a publish call, or raise when disconnected."""
        if not self.connected:
            msg = f"Cannot publish to {topic}: not connected"
            raise NotConnectedError(msg)
        self.published.append((topic, payload, retain, qos))

    async def subscribe(self, topic: str) -> None:
        """Record a subscribe call; failing topics are logged, not raised."""
        if topic in self.failing_topics:
            self.failed_subscriptions.append(topic)
            logger.warning("Subscription to %s failed", topic, extra={"topic": topic})
            return
        self.subscriptions.append(topic)

    # -- Test helpers -------------------------------------------------------

    def on_message(self, callback: MessageCallback) -> None:
        """Register an inbound-message callback."""
        self._callbacks.append(callback)

    async def deliver(self, topic: str, payload: str) -> None:
        """Simulate an inbound message by invoking all callbacks."""
        for cb in self._callbacks:
            await cb(topic, payload)

    @property
    def publish_count(self) -> int:
        """Number of recorded publishes."""
        return len(self.published)

    def reset(self) -> None:
        """Clear all recorded data and callbacks."""
        self.published.clear()
        self.subscriptions.clear()
        self.failed_subscriptions.clear()
        self._callbacks.clear()

    def get_messages_for(self, topic: str) -> list[str]:
        """Return the payloads published to *topic*, in order."""
        return [payload for t, payload, _retain, _qos in self.published if t == topic]


# ---------------------------------------------------------------------------
# Real adapter
# ---------------------------------------------------------------------------


@dataclass
class MqttClient:
    """Production MQTT adapter backed by *aiomqtt*.

    A background task keeps one broker session alive, retrying every
    ``settings.reconnect_interval`` seconds after a failure.  Message
    callbacks are awaited inline on that task, so they must return
    quickly (enqueue and go); a slow callback delays the next message,
    never the reconnect logic itself.

    Usable as an async context manager for scoped ownership::

        async with MqttClient(settings=settings) as client:
            await client.subscribe("home/temp")
    """

    settings: MqttSettings

    # internal state --------------------------------------------------------
    _state: ConnectionState = field(
        default=ConnectionState.DISCONNECTED,
        init=False,
    )
    _callbacks: list[MessageCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _connect_callbacks: list[ConnectionCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _disconnect_callbacks: list[ConnectionCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _subscriptions: dict[str, None] = field(
        default_factory=dict,
        init=False,
        repr=False,
    )
    _client: Any = field(default=None, init=False, repr=False)
    _listen_task: asyncio.Task[None] | None = field(
        default=None,
        init=False,
        repr=False,
    )
    _connected: asyncio.Event = field(
        default_factory=asyncio.Event,
        init=False,
        repr=False,
    )
    _stopping: bool = field(default=False, init=False, repr=False)

    # -- MqttPort methods --------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None:
        """Publish a message to the broker.

        Raises:
            NotConnectedError: If there is no live session, or the
                session broke during the publish.
        """
        client = self._client
        if self._state is not ConnectionState.CONNECTED or client is None:
            msg = f"Cannot publish to {topic}: MQTT client is {self._state}"
            raise NotConnectedError(msg)
        try:
            await client.publish(topic, payload, retain=retain, qos=qos)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            msg = f"Publish to {topic} failed: {exc}"
            raise NotConnectedError(msg) from exc
        logger.debug(
            "Published to %s (qos=%d, retain=%s): %s",
            topic,
            qos,
            retain,
            payload,
            extra={"topic": topic},
        )

    async def subscribe(self, topic: str) -> None:
        """Subscribe to *topic*.

        The subscription is tracked internally so it can be restored
        after a reconnection.  When connected, it is also sent to the
        broker right away; a failure there is logged, not raised.
        """
        self._subscriptions[topic] = None
        if self._client is not None:
            await self._subscribe_one(self._client, topic)

    # -- Callback registration ---------------------------------------------

    def on_message(self, callback: MessageCallback) -> None:
        """Register a callback for inbound messages."""
        self._callbacks.append(callback)

    def on_connected(self, callback: ConnectionCallback) -> None:
        """Register a callback fired after each successful (re)connect."""
        self._connect_callbacks.append(callback)

    def on_disconnected(self, callback: ConnectionCallback) -> None:
        """Register a callback fired whenever a live session ends."""
        self._disconnect_callbacks.append(callback)

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start the background connection loop."""
        if self._listen_task is not None and not self._listen_task.done():
            logger.debug("MqttClient.start() called while already running")
            return
        self._stopping = False
        self._listen_task = asyncio.create_task(
            self._connection_loop(),
            name="mqtt-connection",
        )

    async def stop(self) -> None:
        """Stop the connection loop and release the session.

        Idempotent — safe to call multiple times.
        """
        was_connected = self.is_connected
        self._stopping = True
        if self._listen_task is not None:
            self._listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None
        self._client = None
        self._connected.clear()
        self._set_state(ConnectionState.DISCONNECTED)
        if was_connected:
            await _fire_all(self._disconnect_callbacks, "disconnected")

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

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Whether the client is currently connected to the broker."""
        return self._connected.is_set()

    @property
    def subscriptions(self) -> list[str]:
        """Tracked topics, in subscription order."""
        return list(self._subscriptions)

    async def wait_connected(self) -> None:
        """Block until the next time a session is established."""
        await self._connected.wait()

    # -- Internal -----------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            logger.debug(
                "MQTT state %s → %s",
                self._state,
                state,
                extra={"connection_state": state},
            )
            self._state = state

    async def _subscribe_one(self, client: Any, topic: str) -> bool:
        try:
            await client.subscribe(topic, qos=self.settings.qos)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = SubscriptionError(f"Failed to subscribe to {topic}: {exc}", topic=topic)
            logger.warning("%s", error, extra={"topic": topic})
            return False
        logger.debug("Subscribed to %s", topic, extra={"topic": topic})
        return True

    async def _connection_loop(self) -> None:
        """Maintain a persistent connection with fixed-interval reconnect.

        ``aiomqtt`` is imported lazily here so that ``MockMqttClient``
        works without the dependency.
        """
        try:
            import aiomqtt  # noqa: PLC0415
        except ModuleNotFoundError as exc:
            msg = "aiomqtt is required to use MqttClient"
            raise RuntimeError(msg) from exc

        self._set_state(ConnectionState.CONNECTING)
        while not self._stopping:
            was_connected = False
            try:
                password: str | None = None
                if self.settings.password is not None:
                    password = self.settings.password.get_secret_value()

                async with aiomqtt.Client(
                    hostname=self.settings.host,
                    port=self.settings.port,
                    username=self.settings.username,
                    password=password,
                    identifier=self.settings.client_id or None,
                    keepalive=self.settings.keepalive,
                ) as client:
                    self._client = client
                    try:
                        self._set_state(ConnectionState.CONNECTED)
                        self._connected.set()
                        was_connected = True
                        logger.info(
                            "MQTT connected to %s:%d",
                            self.settings.host,
                            self.settings.port,
                            extra={"connection_state": ConnectionState.CONNECTED},
                        )

                        failed = 0
                        for topic in list(self._subscriptions):
                            if not await self._subscribe_one(client, topic):
                                failed += 1
                        if failed:
                            logger.warning(
                                "%d of %d subscription(s) failed; continuing",
                                failed,
                                len(self._subscriptions),
                            )

                        await _fire_all(self._connect_callbacks, "connected")

                        async for message in client.messages:
                            await self._dispatch(message)
                    finally:
                        self._connected.clear()
                        self._client = None

            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning(
                    "MQTT connection lost, reconnecting in %.1fs",
                    self.settings.reconnect_interval,
                    exc_info=True,
                    extra={"connection_state": ConnectionState.RECONNECTING},
                )

            self._set_state(ConnectionState.RECONNECTING)
            if was_connected:
                await _fire_all(self._disconnect_callbacks, "disconnected")
            await asyncio.sleep(self.settings.reconnect_interval)

    async def _dispatch(self, message: Any) -> None:
        """Decode and fan-out an inbound message to callbacks."""
        topic = str(message.topic)

        if message.payload is None:
            logger.debug(
                "Skipping message with None payload on %s",
                topic,
            )
            return

        if isinstance(message.payload, (bytes, bytearray)):
            payload = message.payload.decode("utf-8", errors="replace")
        else:
            payload = str(message.payload)

        for cb in self._callbacks:
            try:
                await cb(topic, payload)
            except Exception:
                logger.exception(
                    "Error in message callback for %s",
                    topic,
                    extra={"topic": topic},
                )

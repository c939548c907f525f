"""Broker access: the MQTT port and its aiomqtt-backed adapter.

The rest of the bridge publishes and subscribes through :class:`MqttPort`
only.  :class:`MqttClient` owns the one broker connection:

- the connection lives in a background task and is re-established after
  any failure, waiting ``reconnect_interval`` seconds, doubling per
  consecutive failure up to ``reconnect_max_interval``, with jitter so a
  fleet of bridges does not reconnect in lockstep;
- every topic passed to :meth:`MqttClient.subscribe` is re-subscribed on
  each new connection;
- the Last Will is described by :class:`WillConfig` so callers never touch
  aiomqtt types.

``aiomqtt`` is imported when the connection task starts, which keeps the
in-memory double in :mod:`showerguard.testing` usable on its own.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from showerguard._settings import MqttSettings

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, str], Awaitable[None]]
"""Async callback receiving ``(topic, payload)`` for each inbound message."""


@dataclass(frozen=True)
class WillConfig:
    """Message the broker publishes for us if the connection dies."""

    topic: str
    payload: str = "offline"
    qos: int = 1
    retain: bool = True


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


@runtime_checkable
class MqttPort(Protocol):
    """Publish/subscribe contract used by every component."""

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
    """Clients holding a connection that must be started and stopped."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


@runtime_checkable
class MqttMessageHandler(Protocol):
    """Clients that hand inbound messages to registered callbacks."""

    def on_message(self, callback: MessageCallback) -> None: ...


# ---------------------------------------------------------------------------
# aiomqtt adapter
# ---------------------------------------------------------------------------


@dataclass
class MqttClient:
    """Persistent, self-healing broker connection.

    Args:
        settings: Broker address, credentials, QoS and backoff bounds.
        will: Optional Last Will registered with every connection.
    """

    settings: MqttSettings
    will: WillConfig | None = None

    _callbacks: list[MessageCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _topics: set[str] = field(default_factory=set, init=False, repr=False)
    _client: Any = field(default=None, init=False, repr=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)
    _connected: asyncio.Event = field(
        default_factory=asyncio.Event,
        init=False,
        repr=False,
    )

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None:
        """Publish on the live connection.

        Raises:
            RuntimeError: While no broker connection is up.
        """
        client = self._client
        if client is None:
            msg = "MqttClient is not connected"
            raise RuntimeError(msg)
        await client.publish(topic, payload, retain=retain, qos=qos)
        logger.debug("Published %s (retain=%s, qos=%d)", topic, retain, qos)

    async def subscribe(self, topic: str) -> None:
        """Subscribe now if connected, and again after every reconnect."""
        self._topics.add(topic)
        if self._client is not None:
            await self._client.subscribe(topic, qos=self.settings.qos)

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    async def start(self) -> None:
        """Launch the connection task; a second call is a no-op."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="mqtt-connection")

    async def stop(self) -> None:
        """Cancel the connection task.  Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._client = None
        self._connected.clear()

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Wait for a connection; ``False`` if *timeout* runs out first."""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except TimeoutError:
            return False
        return True

    # -- internals ----------------------------------------------------------

    def _backoff_delay(self, failures: int) -> float:
        """Seconds to wait after *failures* consecutive failed attempts."""
        exponent = max(failures - 1, 0)
        delay = min(
            self.settings.reconnect_interval * 2**exponent,
            self.settings.reconnect_max_interval,
        )
        return delay * random.uniform(0.8, 1.0)  # noqa: S311

    def _client_kwargs(self, aiomqtt: Any) -> dict[str, Any]:
        s = self.settings
        kwargs: dict[str, Any] = {
            "hostname": s.host,
            "port": s.port,
            "username": s.username,
            "password": s.password.get_secret_value() if s.password else None,
            "identifier": s.client_id or None,
            "will": None,
        }
        if self.will is not None:
            kwargs["will"] = aiomqtt.Will(
                topic=self.will.topic,
                payload=self.will.payload,
                qos=self.will.qos,
                retain=self.will.retain,
            )
        return kwargs

    async def _run(self) -> None:
        try:
            import aiomqtt  # noqa: PLC0415
        except ModuleNotFoundError as exc:
            msg = "aiomqtt is required to use MqttClient"
            raise RuntimeError(msg) from exc

        failures = 0
        while True:
            try:
                async with aiomqtt.Client(**self._client_kwargs(aiomqtt)) as client:
                    failures = 0
                    await self._serve(client)
            except asyncio.CancelledError:
                raise
            except Exception:
                failures += 1
                delay = self._backoff_delay(failures)
                logger.warning(
                    "Broker %s:%d unavailable, retrying in %.1fs",
                    self.settings.host,
                    self.settings.port,
                    delay,
                    exc_info=True,
                )
                await asyncio.sleep(delay)

    async def _serve(self, client: Any) -> None:
        """Restore subscriptions, then pump messages until the link drops."""
        self._client = client
        try:
            for topic in sorted(self._topics):
                await client.subscribe(topic, qos=self.settings.qos)
            self._connected.set()
            logger.info(
                "Connected to broker %s:%d",
                self.settings.host,
                self.settings.port,
            )
            async for message in client.messages:
                await self._dispatch(message)
        finally:
            self._connected.clear()
            self._client = None

    async def _dispatch(self, message: Any) -> None:
        topic = str(message.topic)
        raw = message.payload
        if raw is None:
            logger.debug("Dropping empty message on %s", topic)
            return
        payload = raw.decode() if isinstance(raw, bytes | bytearray) else str(raw)
        for callback in self._callbacks:
            try:
                await callback(topic, payload)
            except Exception:
                logger.exception("Message handler failed for %s", topic)

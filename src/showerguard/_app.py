"""Application orchestrator for the showerguard bridge.

:class:`App` is the composition root.  It wires settings, logging, the
MQTT client, health and error reporting, the boiler adapters and the
:class:`~showerguard._monitor.ShowerMonitor`, then drives the monitor
from a fixed-interval poll loop until shutdown.

Typical usage::

    from showerguard import App

    App(version="0.1.0").cli()

Topic layout (``{prefix}`` defaults to the app name)::

    {prefix}/status                 ← heartbeat / LWT
    {prefix}/shower/availability    ← online/offline
    {prefix}/shower_active          ← on/off
    {prefix}/shower_data            ← session summaries
    {prefix}/coldshot/set           ← force a cold shot (any payload)
    {prefix}/coldshot/state         ← {"message": ...} response
    {prefix}/error                  ← structured errors
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import uuid

from showerguard._boiler import (
    ActuatorPort,
    DryRunActuator,
    MqttTapActuator,
    MqttTapSensor,
)
from showerguard._clock import ClockPort, SystemClock, WallClock, system_wall_clock
from showerguard._errors import ErrorPublisher, ShowerNotActiveError
from showerguard._health import HealthReporter, build_will_config
from showerguard._logging import configure_logging
from showerguard._monitor import ShowerMonitor
from showerguard._mqtt import (
    MqttClient,
    MqttLifecycle,
    MqttMessageHandler,
    MqttPort,
)
from showerguard._router import TopicRouter
from showerguard._settings import Settings
from showerguard._sink import MqttEventSink

logger = logging.getLogger(__name__)

DEVICE_NAME = "shower"
COLDSHOT_COMMAND = "coldshot"

_BROKER_WAIT_STEP = 1.0


class App:
    """Composition root and lifecycle owner for the bridge."""

    def __init__(
        self,
        name: str = "showerguard",
        version: str = "0.0.0",
        *,
        description: str = "Shower detection and cold-shot bridge",
        settings_class: type[Settings] = Settings,
        dry_run: bool = False,
        heartbeat_interval: float | None = 60.0,
    ) -> None:
        """Initialise the application.

        Args:
            name: Application name (default MQTT topic prefix and client ID).
            version: Application version string.
            description: Short description for CLI help text.
            settings_class: Settings subclass to instantiate at startup.
            dry_run: When True, tap commands are logged instead of sent.
            heartbeat_interval: Seconds between heartbeats published to
                ``{prefix}/status``; ``None`` disables periodic heartbeats.
        """
        if heartbeat_interval is not None and heartbeat_interval <= 0:
            msg = f"heartbeat_interval must be positive, got {heartbeat_interval}"
            raise ValueError(msg)
        self._name = name
        self._version = version
        self._description = description
        self._settings_class = settings_class
        self._dry_run = dry_run
        self._heartbeat_interval = heartbeat_interval
        self._monitor: ShowerMonitor | None = None

    @property
    def monitor(self) -> ShowerMonitor | None:
        """The running monitor, or None outside :meth:`_run_async`."""
        return self._monitor

    # --- Lifecycle ---------------------------------------------------------

    def run(
        self,
        *,
        mqtt: MqttPort | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        wall_clock: WallClock | None = None,
    ) -> None:
        """Start the application (blocking, synchronous entrypoint).

        All parameters are optional and intended for programmatic or
        test use.  See :meth:`_run_async`.
        """
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(
                self._run_async(
                    mqtt=mqtt,
                    settings=settings,
                    shutdown_event=shutdown_event,
                    clock=clock,
                    wall_clock=wall_clock,
                ),
            )

    def cli(self) -> None:
        """Start the application with Typer CLI argument parsing."""
        from showerguard._cli import build_cli

        cli = build_cli(self)
        cli(standalone_mode=True)

    async def _run_async(
        self,
        *,
        mqtt: MqttPort | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        wall_clock: WallClock | None = None,
    ) -> None:
        """Async orchestration.

        1. Bootstrap infrastructure (settings, logging, clock, MQTT).
        2. Build adapters and the monitor; wire routing and subscriptions.
        3. Start the monitor and poll it until shutdown.
        4. Tear down: restore hot water, publish offline, stop MQTT.

        Args:
            mqtt: Override MQTT client (inject a mock for tests).
            settings: Override settings (skip env loading).
            shutdown_event: Override shutdown event (skip signal handlers).
            clock: Override the monotonic clock.
            wall_clock: Override the wall clock used for summary timestamps.
        """
        # --- Phase 1: Bootstrap infrastructure ---
        resolved_settings = settings if settings is not None else self._settings_class()
        prefix = resolved_settings.mqtt.topic_prefix or self._name
        configure_logging(
            resolved_settings.logging,
            service=self._name,
            version=self._version,
        )
        resolved_clock = clock if clock is not None else SystemClock()

        mqtt = self._create_mqtt(mqtt, resolved_settings, prefix)
        health_reporter = HealthReporter(
            mqtt=mqtt,
            topic_prefix=prefix,
            version=self._version,
            clock=resolved_clock,
        )
        error_publisher = ErrorPublisher(mqtt=mqtt, topic_prefix=prefix)

        shutdown_event = self._install_signal_handlers(shutdown_event)

        # --- Phase 2: Adapters, monitor, routing ---
        boiler = resolved_settings.boiler
        tap_sensor = MqttTapSensor(
            topic=boiler.tap_state_topic,
            key=boiler.tap_state_key,
        )
        ha = resolved_settings.homeassistant
        sink = MqttEventSink(
            mqtt=mqtt,
            topic_prefix=prefix,
            availability_topic=health_reporter.availability_topic(DEVICE_NAME),
            bool_format=ha.bool_format,
            discovery_prefix=ha.discovery_prefix if ha.enabled else None,
            base_name=ha.base_name,
        )
        monitor = ShowerMonitor(
            config=resolved_settings.shower.to_config(),
            tap_sensor=tap_sensor,
            actuator=self._create_actuator(mqtt, resolved_settings),
            sink=sink,
            clock=resolved_clock,
            wall_clock=wall_clock if wall_clock is not None else system_wall_clock,
        )
        self._monitor = monitor

        router = self._wire_router(prefix, monitor, tap_sensor, mqtt, error_publisher)
        await self._subscribe_and_connect(mqtt, router)

        if isinstance(mqtt, MqttLifecycle):
            await mqtt.start()
        await self._wait_for_broker(mqtt, shutdown_event)

        # --- Phase 3: Run ---
        await health_reporter.publish_device_available(DEVICE_NAME)
        await health_reporter.publish_heartbeat()
        background: list[asyncio.Task[None]] = []
        if self._heartbeat_interval is not None:
            background.append(
                asyncio.create_task(
                    _heartbeats(health_reporter, self._heartbeat_interval),
                    name="heartbeat",
                ),
            )

        try:
            await self._start_monitor(monitor, error_publisher)
            background.append(
                asyncio.create_task(
                    _poll(
                        monitor,
                        resolved_settings.shower.poll_interval,
                        shutdown_event,
                        error_publisher,
                        health_reporter,
                    ),
                    name="shower-poll",
                ),
            )
            await shutdown_event.wait()
        finally:
            # --- Phase 4: Tear down ---
            await _cancel(background)
            try:
                await monitor.stop()
            except Exception:
                logger.exception("Hot water could not be restored on shutdown")

        await health_reporter.shutdown()
        if isinstance(mqtt, MqttLifecycle):
            await mqtt.stop()

        self._monitor = None
        logger.info("Stopped")

    # --- _run_async helpers ------------------------------------------------

    def _create_mqtt(
        self,
        mqtt: MqttPort | None,
        resolved_settings: Settings,
        prefix: str,
    ) -> MqttPort:
        """Injected client, or a real one with the status topic as its Will.

        An empty ``client_id`` becomes ``"{name}-{8 hex digits}"``.
        """
        if mqtt is not None:
            return mqtt
        mqtt_settings = resolved_settings.mqtt
        if not mqtt_settings.client_id:
            mqtt_settings = mqtt_settings.model_copy(
                update={"client_id": f"{self._name}-{uuid.uuid4().hex[:8]}"},
            )
        return MqttClient(settings=mqtt_settings, will=build_will_config(prefix))

    def _create_actuator(self, mqtt: MqttPort, settings: Settings) -> ActuatorPort:
        if self._dry_run:
            logger.info("Dry run: hot water commands are logged, not sent")
            return DryRunActuator()
        return MqttTapActuator(mqtt=mqtt, command_topic=settings.boiler.tap_command_topic)

    @staticmethod
    def _install_signal_handlers(
        shutdown_event: asyncio.Event | None,
    ) -> asyncio.Event:
        if shutdown_event is not None:
            return shutdown_event
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGTERM, stop.set)
        loop.add_signal_handler(signal.SIGINT, stop.set)
        return stop

    @staticmethod
    def _wire_router(
        prefix: str,
        monitor: ShowerMonitor,
        tap_sensor: MqttTapSensor,
        mqtt: MqttPort,
        error_publisher: ErrorPublisher,
    ) -> TopicRouter:
        """Route the tap state topic to the sensor and the cold-shot command."""
        router = TopicRouter(topic_prefix=prefix)
        router.listen(tap_sensor.topic, tap_sensor.handle_message)

        response_topic = f"{prefix}/{COLDSHOT_COMMAND}/state"

        async def _coldshot(topic: str, payload: str) -> None:
            try:
                monitor.request_cold_shot()
            except ShowerNotActiveError as exc:
                await mqtt.publish(response_topic, json.dumps({"message": str(exc)}))
                await error_publisher.publish(exc, device=COLDSHOT_COMMAND)
                return
            await mqtt.publish(response_topic, json.dumps({"message": "OK"}))

        router.register(COLDSHOT_COMMAND, _coldshot)
        return router

    @staticmethod
    async def _subscribe_and_connect(
        mqtt: MqttPort,
        router: TopicRouter,
    ) -> None:
        for topic in router.subscriptions:
            await mqtt.subscribe(topic)
        if isinstance(mqtt, MqttMessageHandler):
            mqtt.on_message(router.route)

    @staticmethod
    async def _wait_for_broker(mqtt: MqttPort, shutdown_event: asyncio.Event) -> None:
        """Block until a real client is connected or shutdown is requested."""
        if not isinstance(mqtt, MqttClient):
            return
        while not shutdown_event.is_set():
            if await mqtt.wait_connected(timeout=_BROKER_WAIT_STEP):
                return
        logger.debug("Shutdown requested before the broker connection came up")

    @staticmethod
    async def _start_monitor(
        monitor: ShowerMonitor,
        error_publisher: ErrorPublisher,
    ) -> None:
        try:
            await monitor.start()
        except Exception as exc:
            logger.error("Monitor start failed: %s", exc)
            await error_publisher.publish(exc, device=DEVICE_NAME)


async def _poll(
    monitor: ShowerMonitor,
    interval: float,
    shutdown_event: asyncio.Event,
    error_publisher: ErrorPublisher,
    health_reporter: HealthReporter,
) -> None:
    """Tick the monitor every *interval* seconds until shutdown.

    A failing tick is reported once per distinct error type, and the
    device reads ``error`` in heartbeats until a tick succeeds again.
    """
    failing: type[Exception] | None = None
    while not shutdown_event.is_set():
        status = "ok"
        try:
            await monitor.tick()
        except Exception as exc:
            status = "error"
            if type(exc) is not failing:
                logger.error("Shower monitor tick failed: %s", exc)
                await error_publisher.publish(exc, device=DEVICE_NAME)
            failing = type(exc)
        else:
            if failing is not None:
                logger.info("Shower monitor recovered")
                failing = None
        health_reporter.set_device_status(
            DEVICE_NAME,
            status,
            state=monitor.state.value,
        )
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), interval)


async def _heartbeats(health_reporter: HealthReporter, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await health_reporter.publish_heartbeat()


async def _cancel(tasks: list[asyncio.Task[None]]) -> None:
    for task in tasks:
        task.cancel()
    for task, result in zip(
        tasks,
        await asyncio.gather(*tasks, return_exceptions=True),
        strict=True,
    ):
        if isinstance(result, Exception):
            logger.error("%s failed during shutdown: %s", task.get_name(), result)

"""Liveness of the bridge as seen from the broker.

Retained topics::

    {prefix}/status                  heartbeat JSON, "offline" when gone
    {prefix}/{device}/availability   "online" / "offline"

``{prefix}/status`` doubles as the Last Will topic (see
:func:`build_will_config`), so a crash is visible too.  A heartbeat
looks like::

    {"status": "online", "uptime_s": 3600.0, "version": "0.1.0",
     "devices": {"shower": {"status": "ok", "state": "showering"}}}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from showerguard._clock import ClockPort, elapsed_ms
from showerguard._mqtt import MqttPort, WillConfig

logger = logging.getLogger(__name__)

OFFLINE = "offline"
ONLINE = "online"


@dataclass(frozen=True, slots=True)
class DeviceStatus:
    status: str = "ok"
    state: str | None = None

    def to_dict(self) -> dict[str, str]:
        if self.state is None:
            return {"status": self.status}
        return {"status": self.status, "state": self.state}


@dataclass(frozen=True, slots=True)
class HeartbeatPayload:
    status: str
    uptime_s: float
    version: str
    devices: dict[str, DeviceStatus] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "status": self.status,
                "uptime_s": self.uptime_s,
                "version": self.version,
                "devices": {k: v.to_dict() for k, v in self.devices.items()},
            },
        )


def build_will_config(topic_prefix: str) -> WillConfig:
    """Last Will that marks ``{topic_prefix}/status`` offline."""
    return WillConfig(topic=f"{topic_prefix}/status", payload=OFFLINE)


@dataclass
class HealthReporter:
    """Publishes heartbeats and device availability.

    Uptime is measured on *clock* from construction.  Every publish is
    retained with QoS 1; a failed publish is logged and dropped.
    """

    mqtt: MqttPort
    topic_prefix: str
    version: str
    clock: ClockPort
    _start_ms: int = field(init=False, repr=False)
    _devices: dict[str, DeviceStatus] = field(
        init=False,
        default_factory=dict,
        repr=False,
    )

    def __post_init__(self) -> None:
        self._start_ms = self.clock.now_ms()

    @property
    def status_topic(self) -> str:
        return f"{self.topic_prefix}/status"

    def availability_topic(self, device: str) -> str:
        return f"{self.topic_prefix}/{device}/availability"

    def set_device_status(
        self,
        device: str,
        status: str = "ok",
        *,
        state: str | None = None,
    ) -> None:
        self._devices[device] = DeviceStatus(status=status, state=state)

    def device_status(self, device: str) -> DeviceStatus | None:
        return self._devices.get(device)

    async def publish_device_available(self, device: str) -> None:
        await self._publish(self.availability_topic(device), ONLINE)
        self.set_device_status(device)

    async def publish_device_unavailable(self, device: str) -> None:
        await self._publish(self.availability_topic(device), OFFLINE)
        self._devices.pop(device, None)

    async def publish_heartbeat(self) -> None:
        uptime = elapsed_ms(self.clock.now_ms(), self._start_ms) / 1000
        heartbeat = HeartbeatPayload(
            status=ONLINE,
            uptime_s=uptime,
            version=self.version,
            devices=dict(self._devices),
        )
        logger.debug("Heartbeat, uptime %.1fs", uptime)
        await self._publish(self.status_topic, heartbeat.to_json())

    async def shutdown(self) -> None:
        """Mark every tracked device, then the bridge itself, offline."""
        logger.info("Marking %s offline", self.topic_prefix)
        devices, self._devices = list(self._devices), {}
        for device in devices:
            await self._publish(self.availability_topic(device), OFFLINE)
        await self._publish(self.status_topic, OFFLINE)

    async def _publish(self, topic: str, payload: str) -> None:
        try:
            await self.mqtt.publish(topic, payload, retain=True, qos=1)
        except Exception:
            logger.exception("Could not publish %s", topic)

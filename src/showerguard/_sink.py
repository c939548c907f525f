"""Event sink port and MQTT adapter.

The monitor emits two event kinds, :class:`StateChanged` and
:class:`SessionSummary`.  How they are serialised and transported is the
sink's business.

Topic layout of :class:`MqttEventSink`::

    {prefix}/shower_active   ← "on"/"off" (bool format), retained
    {prefix}/shower_data     ← {"duration": 195, "timestamp": "..."}, not retained

Discovery documents are (re)published with the first state message and
whenever a state change is forced.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from showerguard._discovery import build_discovery_messages, render_bool
from showerguard._monitor import SessionSummary, StateChanged
from showerguard._mqtt import MqttPort
from showerguard._settings import BoolFormat

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSinkPort(Protocol):
    """Receives the monitor's state changes and session summaries."""

    async def state_changed(
        self,
        event: StateChanged,
        *,
        force: bool = False,
    ) -> None: ...

    async def session_summary(self, event: SessionSummary) -> None: ...


@dataclass
class MqttEventSink:
    """Publishes shower events, plus Home Assistant discovery, to MQTT.

    Args:
        mqtt: MQTT port used for publishing.
        topic_prefix: Prefix for the state topics.
        availability_topic: Topic referenced by discovery documents.
        bool_format: Rendering of ``shower_active`` payloads.
        discovery_prefix: Home Assistant discovery prefix, or ``None`` to
            skip discovery entirely.
        base_name: Identifier used in discovery ids; defaults to the
            topic prefix.
    """

    mqtt: MqttPort
    topic_prefix: str
    availability_topic: str
    bool_format: BoolFormat = "on_off"
    discovery_prefix: str | None = "homeassistant"
    base_name: str = ""
    _discovery_done: bool = field(default=False, init=False, repr=False)

    @property
    def active_topic(self) -> str:
        return f"{self.topic_prefix}/shower_active"

    @property
    def data_topic(self) -> str:
        return f"{self.topic_prefix}/shower_data"

    async def state_changed(
        self,
        event: StateChanged,
        *,
        force: bool = False,
    ) -> None:
        payload = render_bool(event.active, self.bool_format)
        logger.debug("Publishing shower_active=%s", payload)
        await self.mqtt.publish(self.active_topic, payload, retain=True, qos=1)
        if self.discovery_prefix is not None and (force or not self._discovery_done):
            await self.publish_discovery()

    async def session_summary(self, event: SessionSummary) -> None:
        await self.mqtt.publish(
            self.data_topic,
            json.dumps(event.to_dict()),
            retain=False,
            qos=1,
        )

    async def publish_discovery(self) -> None:
        """Publish all discovery documents (retained)."""
        if self.discovery_prefix is None:
            return
        messages = build_discovery_messages(
            discovery_prefix=self.discovery_prefix,
            base_name=self.base_name or self.topic_prefix,
            topic_prefix=self.topic_prefix,
            availability_topic=self.availability_topic,
            bool_format=self.bool_format,
        )
        for message in messages:
            await self.mqtt.publish(
                message.topic,
                message.to_json(),
                retain=True,
                qos=1,
            )
        self._discovery_done = True
        logger.info("Published %d discovery documents", len(messages))

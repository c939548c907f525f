"""Home Assistant MQTT discovery documents for the shower entities.

Three entities share one device block::

    binary_sensor/{base}/shower_active/config      ← "Shower Active"
    sensor/{base}/shower_duration/config           ← "Shower Duration" (s)
    sensor/{base}/shower_timestamp/config          ← "Shower Timestamp"

Documents use Home Assistant's abbreviated keys (``stat_t``, ``uniq_id``,
``avty``...) and are published retained so Home Assistant picks them up
after its own restarts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from showerguard._settings import BoolFormat

_BOOL_PAYLOADS: dict[str, tuple[object, object]] = {
    "on_off": ("on", "off"),
    "ON_OFF": ("ON", "OFF"),
    "true_false": ("true", "false"),
    "1_0": (1, 0),
}


def render_bool(value: bool, bool_format: BoolFormat) -> str:
    """Render *value* as a state payload string in *bool_format*."""
    on, off = _BOOL_PAYLOADS[bool_format]
    return str(on if value else off)


@dataclass(frozen=True, slots=True)
class DiscoveryMessage:
    """One retained discovery document and where it goes."""

    topic: str
    document: dict[str, object]

    def to_json(self) -> str:
        return json.dumps(self.document)


def build_discovery_messages(
    *,
    discovery_prefix: str,
    base_name: str,
    topic_prefix: str,
    availability_topic: str,
    bool_format: BoolFormat,
) -> list[DiscoveryMessage]:
    """Build the discovery documents for the shower entities.

    Args:
        discovery_prefix: Home Assistant discovery prefix.
        base_name: Identifier used in unique ids and config topics.
        topic_prefix: Prefix of the bridge's own state topics.
        availability_topic: Topic carrying ``online``/``offline``.
        bool_format: Rendering of ``shower_active`` payloads.
    """
    device = {"name": "Shower", "ids": [f"{base_name}-shower"]}
    active_topic = f"{topic_prefix}/shower_active"
    data_topic = f"{topic_prefix}/shower_data"
    pl_on, pl_off = _BOOL_PAYLOADS[bool_format]

    active: dict[str, object] = {
        "name": "Shower Active",
        "uniq_id": f"{base_name}_shower_active",
        "object_id": f"{base_name}_shower_active",
        "stat_t": active_topic,
        "pl_on": pl_on,
        "pl_off": pl_off,
        "dev": device,
        **_availability(availability_topic),
    }
    duration: dict[str, object] = {
        "name": "Shower Duration",
        "uniq_id": f"{base_name}_shower_duration",
        "object_id": f"{base_name}_shower_duration",
        "stat_t": data_topic,
        "val_tpl": "{{value_json.duration if value_json.duration is defined else 0}}",
        "unit_of_meas": "s",
        "stat_cla": "measurement",
        "dev_cla": "duration",
        "dev": device,
        **_availability(availability_topic),
    }
    timestamp: dict[str, object] = {
        "name": "Shower Timestamp",
        "uniq_id": f"{base_name}_shower_timestamp",
        "object_id": f"{base_name}_shower_timestamp",
        "stat_t": data_topic,
        "val_tpl": "{{value_json.timestamp if value_json.timestamp is defined else 0}}",
        "dev": device,
        **_availability(availability_topic),
    }

    return [
        DiscoveryMessage(
            f"{discovery_prefix}/binary_sensor/{base_name}/shower_active/config",
            active,
        ),
        DiscoveryMessage(
            f"{discovery_prefix}/sensor/{base_name}/shower_duration/config",
            duration,
        ),
        DiscoveryMessage(
            f"{discovery_prefix}/sensor/{base_name}/shower_timestamp/config",
            timestamp,
        ),
    ]


def _availability(topic: str) -> dict[str, object]:
    return {
        "avty": [{"t": topic, "pl_avail": "online", "pl_not_avail": "offline"}],
    }

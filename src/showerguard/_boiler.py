"""Hot-water tap sensor and actuator ports, with MQTT adapters.

The boiler gateway (e.g. EMS-ESP) publishes whether hot water is being
drawn and accepts a ``wwtapactivated`` command that enables or disables
the tap.  The monitor only ever sees the two ports below.

Concrete implementations:

- **MqttTapSensor**: caches the last state seen on the tap state topic
- **MqttTapActuator**: publishes ``"true"``/``"false"`` commands
- **DryRunActuator**: logs the command, touches nothing

Test doubles (``FakeTapSensor``, ``RecordingActuator``) live in
:mod:`showerguard.testing`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from showerguard._mqtt import MqttPort

logger = logging.getLogger(__name__)

_TRUE_WORDS = frozenset({"on", "true", "1", "yes"})
_FALSE_WORDS = frozenset({"off", "false", "0", "no"})

# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


@runtime_checkable
class TapSensorPort(Protocol):
    """Supplies the current "hot water flowing" reading."""

    def is_tap_active(self) -> bool: ...


@runtime_checkable
class ActuatorPort(Protocol):
    """Enables or cuts the hot water tap.

    Fire-and-forget from the monitor's point of view: failures propagate
    to the caller and are never retried here.
    """

    async def set_tap_enabled(self, enabled: bool) -> None: ...


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def parse_bool(value: object) -> bool:
    """Interpret a boiler state value as a boolean.

    Accepts JSON booleans and numbers as well as the usual on/off,
    true/false, 1/0 words in any case.

    Raises:
        ValueError: If *value* is not recognisably boolean.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return value != 0
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    msg = f"Not a boolean tap state: {value!r}"
    raise ValueError(msg)


def parse_tap_state(payload: str, key: str | None = None) -> bool:
    """Extract the tap state from an MQTT payload.

    Args:
        payload: Raw payload text.
        key: When set, *payload* must be a JSON object and the state is
            read from this key.

    Raises:
        ValueError: If the payload is malformed or the key is missing.
    """
    if key is None:
        return parse_bool(payload)
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as exc:
        msg = f"Tap state payload is not JSON: {payload!r}"
        raise ValueError(msg) from exc
    if not isinstance(document, dict) or key not in document:
        msg = f"Tap state key {key!r} missing from payload"
        raise ValueError(msg)
    return parse_bool(document[key])


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


@dataclass
class MqttTapSensor:
    """Tap sensor fed by MQTT messages on the boiler's state topic.

    Register :meth:`handle_message` as the listener for ``topic``.
    Until the first valid message arrives the tap reads as inactive.
    Malformed payloads are logged and leave the last reading in place.
    """

    topic: str
    key: str | None = None
    _active: bool = field(default=False, init=False, repr=False)
    _received: bool = field(default=False, init=False, repr=False)

    def is_tap_active(self) -> bool:
        return self._active

    @property
    def has_reading(self) -> bool:
        """Whether any valid state message has been received."""
        return self._received

    async def handle_message(self, topic: str, payload: str) -> None:
        try:
            active = parse_tap_state(payload, self.key)
        except ValueError as exc:
            logger.warning("Ignoring tap state on %s: %s", topic, exc)
            return
        if active != self._active or not self._received:
            logger.debug("Tap state %s", "active" if active else "inactive")
        self._active = active
        self._received = True


@dataclass
class MqttTapActuator:
    """Actuator publishing ``wwtapactivated`` commands to the boiler."""

    mqtt: MqttPort
    command_topic: str

    async def set_tap_enabled(self, enabled: bool) -> None:
        payload = "true" if enabled else "false"
        logger.info("Setting hot water tap %s", "on" if enabled else "off")
        await self.mqtt.publish(self.command_topic, payload, retain=False, qos=1)


@dataclass
class DryRunActuator:
    """Actuator that only logs what it would have done."""

    async def set_tap_enabled(self, enabled: bool) -> None:
        logger.info("[dry-run] would set hot water tap %s", "on" if enabled else "off")

"""Exceptions and the MQTT error channel.

The monitor cannot fail on valid input, so the only domain error is a
rejected command::

    ShowerguardError
    └── InvalidRequestError
        └── ShowerNotActiveError

Failures of collaborators (broker, boiler gateway) keep their own
exception types.  Either kind can be reported on MQTT with
:class:`ErrorPublisher`, as a non-retained QoS 1 JSON event on
``{prefix}/error`` and, when a device is named, on
``{prefix}/{device}/error`` as well::

    {"error_type": "not_active",
     "message": "Coldshot failed. Shower not active",
     "device": "coldshot",
     "timestamp": "2026-10-19T07:12:00+00:00",
     "details": {}}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from showerguard._mqtt import MqttPort

logger = logging.getLogger(__name__)


class ShowerguardError(Exception):
    """Root of the package's exceptions."""


class InvalidRequestError(ShowerguardError):
    """A command was refused; nothing changed."""


class ShowerNotActiveError(InvalidRequestError):
    """Cold shot asked for while no shower is running."""

    def __init__(self, message: str = "Coldshot failed. Shower not active") -> None:
        super().__init__(message)


DEFAULT_ERROR_TYPES: dict[type[Exception], str] = {
    InvalidRequestError: "invalid_request",
    ShowerNotActiveError: "not_active",
}


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    error_type: str
    message: str
    device: str | None
    timestamp: str
    details: dict[str, object] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self))


def build_error_payload(
    error: Exception,
    *,
    error_type_map: dict[type[Exception], str] | None = None,
    device: str | None = None,
    details: dict[str, object] | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ErrorPayload:
    """Describe *error* as an :class:`ErrorPayload`.

    ``error_type`` is looked up by the exception's exact class, so a
    subclass missing from *error_type_map* is reported as ``"error"``.
    *clock* defaults to the current UTC time.
    """
    kinds = error_type_map or {}
    when = datetime.now(UTC) if clock is None else clock()
    return ErrorPayload(
        error_type=kinds.get(type(error), "error"),
        message=str(error),
        device=device,
        timestamp=when.isoformat(),
        details=dict(details) if details else {},
    )


@dataclass
class ErrorPublisher:
    """Reports exceptions on the error topics.

    Reporting never raises: an error that cannot be published is only
    logged.
    """

    mqtt: MqttPort
    topic_prefix: str
    error_type_map: dict[type[Exception], str] = field(
        default_factory=lambda: dict(DEFAULT_ERROR_TYPES),
    )
    clock: Callable[[], datetime] | None = field(default=None, repr=False)

    def topics_for(self, device: str | None) -> list[str]:
        topics = [f"{self.topic_prefix}/error"]
        if device is not None:
            topics.append(f"{self.topic_prefix}/{device}/error")
        return topics

    async def publish(self, error: Exception, *, device: str | None = None) -> None:
        payload = build_error_payload(
            error,
            error_type_map=self.error_type_map,
            device=device,
            clock=self.clock,
        )
        logger.warning(
            "Reporting %s: %s",
            payload.error_type,
            payload.message,
            extra={"device": device},
        )
        body = payload.to_json()
        for topic in self.topics_for(device):
            try:
                await self.mqtt.publish(topic, body, retain=False, qos=1)
            except Exception:
                logger.exception("Could not publish error on %s", topic)

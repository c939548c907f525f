"""Public test-support utilities for showerguard.

Re-exports test doubles and factories so test suites can import
everything from a single ``showerguard.testing`` namespace.

Provided symbols:

- :class:`AppHarness`: App wired with MockMqttClient, FakeClock and a
  shutdown event.
- :class:`FakeClock`: deterministic millisecond clock.
- :class:`FakeTapSensor`: tap sensor whose reading is set directly.
- :class:`RecordingActuator`: records ``set_tap_enabled`` calls.
- :class:`RecordingEventSink`: records emitted events.
- :class:`MockMqttClient`: recording MQTT client with retained view.
- :func:`make_settings`: ``Settings`` without env or ``.env`` input.
"""

from showerguard.testing._clock import FakeClock
from showerguard.testing._doubles import (
    FakeTapSensor,
    RecordingActuator,
    RecordingEventSink,
)
from showerguard.testing._harness import AppHarness
from showerguard.testing._mqtt import MockMqttClient
from showerguard.testing._settings import make_settings

__all__ = [
    "AppHarness",
    "FakeClock",
    "FakeTapSensor",
    "MockMqttClient",
    "RecordingActuator",
    "RecordingEventSink",
    "make_settings",
]

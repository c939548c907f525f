"""Pytest plugin providing shared showerguard fixtures.

Registered through the ``pytest11`` entry point, so consumer suites get
``mock_mqtt``, ``fake_clock``, ``tap_sensor``, ``actuator``,
``event_sink`` and ``monitor`` without importing anything.

Imports live inside the fixtures so that loading the plugin during
pytest start-up does not import showerguard before coverage tracing
begins.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from showerguard._monitor import ShowerMonitor
    from showerguard.testing._clock import FakeClock
    from showerguard.testing._doubles import (
        FakeTapSensor,
        RecordingActuator,
        RecordingEventSink,
    )
    from showerguard.testing._mqtt import MockMqttClient


@pytest.fixture
def mock_mqtt() -> MockMqttClient:
    """Fresh MockMqttClient for each test."""
    from showerguard.testing._mqtt import MockMqttClient

    return MockMqttClient()


@pytest.fixture
def fake_clock() -> FakeClock:
    """FakeClock starting at time 0."""
    from showerguard.testing._clock import FakeClock

    return FakeClock()


@pytest.fixture
def tap_sensor() -> FakeTapSensor:
    """Tap sensor reading inactive."""
    from showerguard.testing._doubles import FakeTapSensor

    return FakeTapSensor()


@pytest.fixture
def actuator() -> RecordingActuator:
    """Actuator recording every call."""
    from showerguard.testing._doubles import RecordingActuator

    return RecordingActuator()


@pytest.fixture
def event_sink() -> RecordingEventSink:
    """Event sink recording every event."""
    from showerguard.testing._doubles import RecordingEventSink

    return RecordingEventSink()


@pytest.fixture
def monitor(
    tap_sensor: FakeTapSensor,
    actuator: RecordingActuator,
    event_sink: RecordingEventSink,
    fake_clock: FakeClock,
) -> ShowerMonitor:
    """ShowerMonitor with default thresholds, alerts enabled at 600 s.

    Wired to the ``tap_sensor``, ``actuator``, ``event_sink`` and
    ``fake_clock`` fixtures; the wall clock reads "never synced".
    """
    from datetime import UTC, datetime

    from showerguard._monitor import MonitorConfig, ShowerMonitor

    return ShowerMonitor(
        config=MonitorConfig(
            alert_enabled=True,
            alert_trigger_ms=600_000,
            coldshot_duration_ms=10_000,
        ),
        tap_sensor=tap_sensor,
        actuator=actuator,
        sink=event_sink,
        clock=fake_clock,
        wall_clock=lambda: datetime.fromtimestamp(0, tz=UTC),
    )

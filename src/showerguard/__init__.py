"""showerguard.

Infers showers from a boiler's hot-water-tap signal, publishes shower
state and durations over MQTT, and optionally sends a cold shot when a
shower runs too long.
"""

from importlib.metadata import PackageNotFoundError, version

from showerguard._app import App
from showerguard._boiler import (
    ActuatorPort,
    DryRunActuator,
    MqttTapActuator,
    MqttTapSensor,
    TapSensorPort,
    parse_tap_state,
)
from showerguard._clock import ClockPort, SystemClock, elapsed_ms
from showerguard._errors import (
    ErrorPayload,
    ErrorPublisher,
    InvalidRequestError,
    ShowerguardError,
    ShowerNotActiveError,
    build_error_payload,
)
from showerguard._health import HealthReporter, HeartbeatPayload, build_will_config
from showerguard._logging import JsonFormatter, configure_logging
from showerguard._monitor import (
    Effect,
    MonitorConfig,
    SessionSummary,
    SetTapEnabled,
    ShowerMonitor,
    ShowerSession,
    ShowerState,
    StateChanged,
    transition,
)
from showerguard._mqtt import MqttClient, MqttPort
from showerguard._settings import (
    BoilerSettings,
    HomeAssistantSettings,
    LoggingSettings,
    MqttSettings,
    Settings,
    ShowerSettings,
)
from showerguard._sink import EventSinkPort, MqttEventSink

try:
    __version__ = version("showerguard")
except PackageNotFoundError:
    # Source checkout without installed metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    "__version__",
    # App
    "App",
    # Core
    "Effect",
    "MonitorConfig",
    "SessionSummary",
    "SetTapEnabled",
    "ShowerMonitor",
    "ShowerSession",
    "ShowerState",
    "StateChanged",
    "transition",
    # Ports and adapters
    "ActuatorPort",
    "ClockPort",
    "DryRunActuator",
    "EventSinkPort",
    "MqttEventSink",
    "MqttTapActuator",
    "MqttTapSensor",
    "SystemClock",
    "TapSensorPort",
    "elapsed_ms",
    "parse_tap_state",
    # MQTT
    "MqttClient",
    "MqttPort",
    # Errors
    "ErrorPayload",
    "ErrorPublisher",
    "InvalidRequestError",
    "ShowerNotActiveError",
    "ShowerguardError",
    "build_error_payload",
    # Health
    "HealthReporter",
    "HeartbeatPayload",
    "build_will_config",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Settings
    "BoilerSettings",
    "HomeAssistantSettings",
    "LoggingSettings",
    "MqttSettings",
    "Settings",
    "ShowerSettings",
]

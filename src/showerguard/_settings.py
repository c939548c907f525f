"""Settings for the bridge, read by pydantic-settings.

Values come from the environment and an optional ``.env`` file, always
under the ``SHOWERGUARD_`` prefix, with ``__`` separating nested models::

    SHOWERGUARD_MQTT__HOST=broker.local
    SHOWERGUARD_SHOWER__ALERT_TRIGGER=420
    SHOWERGUARD_HOMEASSISTANT__ENABLED=false

Durations are seconds here.  :meth:`ShowerSettings.to_config` turns them
into the millisecond :class:`MonitorConfig` used by the monitor.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from showerguard._monitor import (
    MIN_SHOWER_DURATION_MS,
    OFFSET_MS,
    PAUSE_TOLERANCE_MS,
    MonitorConfig,
)

BoolFormat = Literal["on_off", "ON_OFF", "true_false", "1_0"]


class MqttSettings(BaseModel):
    """Broker address, credentials and reconnect behaviour."""

    host: str = Field(default="localhost", description="Broker host.")
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=1883,
        description="Broker TCP port.",
    )
    username: str | None = Field(default=None, description="Broker login.")
    password: SecretStr | None = Field(default=None, description="Broker password.")
    client_id: str = Field(
        default="",
        description="Client identifier; empty means '{name}-{8 hex digits}'.",
    )
    qos: Literal[0, 1, 2] = Field(
        default=1,
        description="QoS for the bridge's subscriptions.",
    )
    reconnect_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description=(
            "Delay in seconds after the first failed connection; doubles "
            "with each further failure."
        ),
    )
    reconnect_max_interval: Annotated[float, Field(gt=0)] = Field(
        default=300.0,
        description="Longest reconnect delay in seconds.",
    )
    topic_prefix: str = Field(
        default="",
        description="First segment of every bridge topic; empty means the app name.",
    )


class LoggingSettings(BaseModel):
    """Where logs go and how they look."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Level set on the root logger.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description="'json' for one object per line, 'text' for terminals.",
    )
    file: str | None = Field(
        default=None,
        description="Also write to this file, rotated by size.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Rotate the log file at this many megabytes.",
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Rotated log files kept.",
    )


class ShowerSettings(BaseModel):
    """Shower detection and cold-shot configuration.

    Environment variables::

        SHOWERGUARD_SHOWER__ENABLED=true
        SHOWERGUARD_SHOWER__ALERT=true
        SHOWERGUARD_SHOWER__ALERT_TRIGGER=420
        SHOWERGUARD_SHOWER__ALERT_COLDSHOT=10
    """

    enabled: bool = Field(
        default=True,
        description="Master switch. When false the monitor does no work.",
    )
    alert: bool = Field(
        default=False,
        description="Issue a cold shot when a shower runs too long.",
    )
    alert_trigger: Annotated[float, Field(gt=0)] = Field(
        default=420.0,
        description="Shower duration (seconds) after which a cold shot fires.",
    )
    alert_coldshot: Annotated[float, Field(gt=0)] = Field(
        default=10.0,
        description="How long (seconds) hot water stays off during a cold shot.",
    )
    min_duration: Annotated[float, Field(ge=0)] = Field(
        default=MIN_SHOWER_DURATION_MS / 1000,
        description="Continuous tap activity (seconds) recognised as a shower.",
    )
    pause_tolerance: Annotated[float, Field(ge=0)] = Field(
        default=PAUSE_TOLERANCE_MS / 1000,
        description="Tap-off gap (seconds) tolerated without ending a session.",
    )
    offset: Annotated[float, Field(ge=0)] = Field(
        default=OFFSET_MS / 1000,
        description="Tap-open-to-flow latency (seconds) subtracted from durations.",
    )
    poll_interval: Annotated[float, Field(gt=0)] = Field(
        default=1.0,
        description="Seconds between monitor ticks.",
    )

    def to_config(self) -> MonitorConfig:
        """Convert to the millisecond configuration used by the monitor."""
        return MonitorConfig(
            monitoring_enabled=self.enabled,
            alert_enabled=self.alert,
            alert_trigger_ms=_to_ms(self.alert_trigger),
            coldshot_duration_ms=_to_ms(self.alert_coldshot),
            min_duration_ms=_to_ms(self.min_duration),
            pause_tolerance_ms=_to_ms(self.pause_tolerance),
            offset_ms=_to_ms(self.offset),
        )


class BoilerSettings(BaseModel):
    """Where the hot-water tap state is read and tap commands are sent.

    Defaults match an EMS-ESP gateway publishing under ``ems-esp``.
    """

    tap_state_topic: str = Field(
        default="ems-esp/tapwater_active",
        description="Topic carrying the hot-water-tap active state.",
    )
    tap_state_key: str | None = Field(
        default=None,
        description=(
            "When set, the state payload is a JSON object and the tap "
            "state is read from this key."
        ),
    )
    tap_command_topic: str = Field(
        default="ems-esp/boiler/wwtapactivated",
        description="Topic accepting 'true'/'false' to enable/disable hot water.",
    )


class HomeAssistantSettings(BaseModel):
    """Home Assistant MQTT discovery configuration."""

    enabled: bool = Field(
        default=True,
        description="Publish discovery documents for the shower entities.",
    )
    discovery_prefix: str = Field(
        default="homeassistant",
        description="Home Assistant discovery topic prefix.",
    )
    base_name: str = Field(
        default="",
        description=(
            "Identifier used in entity ids. When empty, falls back to the "
            "topic prefix."
        ),
    )
    bool_format: BoolFormat = Field(
        default="on_off",
        description="How boolean state payloads are rendered.",
    )


class Settings(BaseSettings):
    """Root settings for showerguard.

    Example ``.env``::

        SHOWERGUARD_MQTT__HOST=broker.local
        SHOWERGUARD_LOGGING__FORMAT=text
        SHOWERGUARD_SHOWER__ALERT=true
        SHOWERGUARD_BOILER__TAP_STATE_TOPIC=ems-esp/boiler_data_ww
        SHOWERGUARD_BOILER__TAP_STATE_KEY=wwtapactive
    """

    model_config = SettingsConfigDict(
        env_prefix="SHOWERGUARD_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mqtt: MqttSettings = Field(
        default_factory=MqttSettings,
        description="Broker connection.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Log level, format and file.",
    )
    shower: ShowerSettings = Field(
        default_factory=ShowerSettings,
        description="Shower detection and alert settings.",
    )
    boiler: BoilerSettings = Field(
        default_factory=BoilerSettings,
        description="Boiler tap state and command topics.",
    )
    homeassistant: HomeAssistantSettings = Field(
        default_factory=HomeAssistantSettings,
        description="Home Assistant discovery settings.",
    )


def _to_ms(seconds: float) -> int:
    return round(seconds * 1000)

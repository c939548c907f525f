"""Shower detection state machine and cold-shot control.

The monitor turns a noisy boolean "hot water tap active" signal into
shower sessions using elapsed-time thresholds only:

- activity shorter than ``min_duration_ms`` is a hand-wash, not a shower;
- a tap-off gap shorter than ``pause_tolerance_ms`` is the occupant
  adjusting the temperature, not the end of the session;
- once a recognised shower runs past ``alert_trigger_ms`` (or a cold
  shot is forced), hot water is cut for ``coldshot_duration_ms`` and then
  always restored.

The logic is split in two:

* :func:`transition` is a pure function ``(session, input) ->
  (session, effects)``.  It never performs I/O, so tests assert on the
  returned effect list directly.
* :class:`ShowerMonitor` is the thin async driver.  It reads the tap
  sensor and the clock, commits the new session, then applies each
  effect to the actuator or event sink in order.

States::

    IDLE ──tap on──▶ DETECTING ──> min_duration──▶ SHOWERING ◀──┐
      ▲                  │                            │         │ coldshot
      └── off > pause ───┴────────── off > pause ─────┘         │ elapsed
                                                      └──▶ COLD_SHOT

``StateChanged`` events fire only on the ``IDLE``/``SHOWERING`` edges.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from showerguard._clock import (
    CLOCK_MODULUS,
    ClockPort,
    WallClock,
    elapsed_ms,
    system_wall_clock,
)
from showerguard._errors import ShowerNotActiveError

if TYPE_CHECKING:
    from showerguard._boiler import ActuatorPort, TapSensorPort
    from showerguard._sink import EventSinkPort

logger = logging.getLogger(__name__)

MIN_SHOWER_DURATION_MS = 180_000
"""Continuous activity that distinguishes a shower from a hand-wash."""

PAUSE_TOLERANCE_MS = 15_000
"""Longest tap-off gap that does not end a session."""

OFFSET_MS = 5_000
"""Tap-open-to-flow latency subtracted from measured durations."""

_PLAUSIBLE_EPOCH_S = 1_576_800_000  # 2019-12-20, wall clock never synced before

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class ShowerState(StrEnum):
    """Observable state of the monitor, derived from the session."""

    IDLE = "idle"
    DETECTING = "detecting"
    SHOWERING = "showering"
    COLD_SHOT = "cold_shot"


@dataclass(frozen=True, slots=True)
class MonitorConfig:
    """Immutable monitor configuration; all durations in milliseconds."""

    monitoring_enabled: bool = True
    alert_enabled: bool = False
    alert_trigger_ms: int = 420_000
    coldshot_duration_ms: int = 10_000
    min_duration_ms: int = MIN_SHOWER_DURATION_MS
    pause_tolerance_ms: int = PAUSE_TOLERANCE_MS
    offset_ms: int = OFFSET_MS
    clock_modulus: int = CLOCK_MODULUS


@dataclass(frozen=True, slots=True)
class ShowerSession:
    """Mutable-by-replacement state owned by the monitor.

    ``None`` timestamps mean "unset"; time zero is a valid timestamp.

    Attributes:
        start_time: When continuous tap activity began.
        pause_time: When activity stopped during a tentative pause.
        alert_timer_start: When the current cold shot began.
        recognized: The activity crossed ``min_duration_ms``.
        cold_shot_active: Hot water is currently suppressed.
        force_cold_shot: A cold shot was requested externally and not
            yet consumed.
    """

    start_time: int | None = None
    pause_time: int | None = None
    alert_timer_start: int | None = None
    recognized: bool = False
    cold_shot_active: bool = False
    force_cold_shot: bool = False

    @property
    def state(self) -> ShowerState:
        if self.cold_shot_active:
            return ShowerState.COLD_SHOT
        if self.recognized:
            return ShowerState.SHOWERING
        if self.start_time is not None:
            return ShowerState.DETECTING
        return ShowerState.IDLE


@dataclass(frozen=True, slots=True)
class SetTapEnabled:
    """Command the actuator to enable (``True``) or cut hot water."""

    enabled: bool


@dataclass(frozen=True, slots=True)
class StateChanged:
    """The shower became active or inactive."""

    active: bool


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """A completed shower.

    ``timestamp`` is ``None`` when no plausible wall clock was available.
    """

    duration_seconds: int
    timestamp: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"duration": self.duration_seconds}
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data


type Effect = SetTapEnabled | StateChanged | SessionSummary

# ---------------------------------------------------------------------------
# Pure transition logic
# ---------------------------------------------------------------------------


def format_timestamp(wall_time: datetime | None) -> str | None:
    """Render *wall_time* for a session summary.

    Returns ``None`` when *wall_time* is missing or predates
    2019-12-20, which means the wall clock was never synchronised.
    """
    if wall_time is None or wall_time.timestamp() <= _PLAUSIBLE_EPOCH_S:
        return None
    return wall_time.strftime(_TIMESTAMP_FORMAT)


def accept_cold_shot(session: ShowerSession) -> ShowerSession:
    """Arm a forced cold shot for the next tick.

    Raises:
        ShowerNotActiveError: If no shower is recognised.  The caller
            should keep its session with the flag cleared.
    """
    if not session.recognized:
        raise ShowerNotActiveError
    return replace(session, force_cold_shot=True)


def transition(
    session: ShowerSession,
    config: MonitorConfig,
    *,
    tap_active: bool,
    now: int,
    wall_time: datetime | None = None,
) -> tuple[ShowerSession, list[Effect]]:
    """Advance the state machine by one tick.

    Args:
        session: Current session state.
        config: Thresholds and switches.
        tap_active: Current hot-water-tap reading.
        now: Current monotonic time in milliseconds.
        wall_time: Wall-clock time, used only to stamp a session summary.

    Returns:
        The new session and the side effects to apply, in order.
    """
    if not config.monitoring_enabled:
        return session, []

    if session.cold_shot_active:
        return _continue_cold_shot(session, config, now)

    if tap_active:
        return _tap_on(session, config, now)
    return _tap_off(session, config, now, wall_time)


def _elapsed(config: MonitorConfig, now: int, since: int) -> int:
    return elapsed_ms(now, since, modulus=config.clock_modulus)


def _continue_cold_shot(
    session: ShowerSession,
    config: MonitorConfig,
    now: int,
) -> tuple[ShowerSession, list[Effect]]:
    # The tap reading is ignored until the cold shot has run its course.
    started = session.alert_timer_start if session.alert_timer_start is not None else now
    if _elapsed(config, now, started) < config.coldshot_duration_ms:
        return session, []
    logger.info("Cold shot finished, restoring hot water")
    return (
        replace(session, cold_shot_active=False, force_cold_shot=False),
        [SetTapEnabled(enabled=True)],
    )


def _tap_on(
    session: ShowerSession,
    config: MonitorConfig,
    now: int,
) -> tuple[ShowerSession, list[Effect]]:
    if session.start_time is None:
        logger.debug("Hot water started")
        return (
            replace(session, start_time=now, pause_time=None, recognized=False),
            [],
        )

    if session.pause_time is not None:
        logger.debug("Hot water resumed within the pause window")
        session = replace(session, pause_time=None)

    running = _elapsed(config, now, session.start_time)
    if not session.recognized and running > config.min_duration_ms:
        logger.info("Hot water still running, shower recognised")
        return replace(session, recognized=True), [StateChanged(active=True)]

    if session.recognized and (
        (config.alert_enabled and running > config.alert_trigger_ms)
        or session.force_cold_shot
    ):
        logger.info(
            "Cold shot started",
            extra={"forced": session.force_cold_shot, "running_ms": running},
        )
        return (
            replace(
                session,
                cold_shot_active=True,
                alert_timer_start=now,
                force_cold_shot=False,
            ),
            [SetTapEnabled(enabled=False)],
        )

    return session, []


def _tap_off(
    session: ShowerSession,
    config: MonitorConfig,
    now: int,
    wall_time: datetime | None,
) -> tuple[ShowerSession, list[Effect]]:
    if session.start_time is not None and session.pause_time is None:
        session = replace(session, pause_time=now)

    if session.pause_time is None or (
        _elapsed(config, now, session.pause_time) <= config.pause_tolerance_ms
    ):
        return session, []

    effects: list[Effect] = []
    start = session.start_time if session.start_time is not None else session.pause_time
    span = _elapsed(config, session.pause_time, start)
    duration = max(span - config.offset_ms, 0)
    if duration > config.min_duration_ms:
        summary = SessionSummary(
            duration_seconds=duration // 1000,
            timestamp=format_timestamp(wall_time),
        )
        logger.info(
            "Shower finished",
            extra={
                "duration_s": summary.duration_seconds,
                "timestamp": summary.timestamp,
            },
        )
        effects.append(summary)

    if session.recognized:
        effects.append(StateChanged(active=False))
    return ShowerSession(), effects


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class ShowerMonitor:
    """Drives :func:`transition` against real collaborators.

    Not thread-safe: ``tick()`` and ``request_cold_shot()`` must run on
    the same event loop, which makes the force flag single-writer.

    Args:
        config: Thresholds and switches.
        tap_sensor: Source of the hot-water-tap reading.
        actuator: Enables or cuts hot water.
        sink: Receives state changes and session summaries.
        clock: Monotonic millisecond clock.
        wall_clock: Wall-clock source for summary timestamps.
    """

    def __init__(
        self,
        *,
        config: MonitorConfig,
        tap_sensor: TapSensorPort,
        actuator: ActuatorPort,
        sink: EventSinkPort,
        clock: ClockPort,
        wall_clock: WallClock = system_wall_clock,
    ) -> None:
        self._config = config
        self._tap_sensor = tap_sensor
        self._actuator = actuator
        self._sink = sink
        self._clock = clock
        self._wall_clock = wall_clock
        self._session = ShowerSession()

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def session(self) -> ShowerSession:
        return self._session

    @property
    def state(self) -> ShowerState:
        return self._session.state

    @property
    def active(self) -> bool:
        """True while a shower is recognised (including during a cold shot)."""
        return self._session.recognized

    async def tick(self) -> list[Effect]:
        """Sample the tap, advance the state machine, apply effects.

        The new session is committed before any effect runs, so a failing
        collaborator never rolls the state machine back.

        Returns:
            The effects that were applied.
        """
        if not self._config.monitoring_enabled:
            return []
        tap_active = self._tap_sensor.is_tap_active()
        now = self._clock.now_ms()
        self._session, effects = transition(
            self._session,
            self._config,
            tap_active=tap_active,
            now=now,
            wall_time=self._wall_clock(),
        )
        for effect in effects:
            await self._apply(effect)
        return effects

    def request_cold_shot(self) -> None:
        """Ask for a cold shot on the next tick.

        Raises:
            ShowerNotActiveError: If no shower is recognised.  The
                request is dropped and nothing else changes.
        """
        logger.info("Forcing cold shot")
        try:
            self._session = accept_cold_shot(self._session)
        except ShowerNotActiveError:
            self._session = replace(self._session, force_cold_shot=False)
            logger.warning("Cold shot rejected, shower not active")
            raise

    async def force_state_change(self) -> None:
        """Republish the current active state without a transition."""
        await self._sink.state_changed(
            StateChanged(active=self._session.recognized),
            force=True,
        )

    async def start(self) -> None:
        """Publish the initial state and make sure hot water is on.

        A process killed mid cold shot would otherwise leave hot water
        disabled across the restart.
        """
        if not self._config.monitoring_enabled:
            logger.info("Shower monitoring disabled")
            return
        await self.force_state_change()
        if self._config.alert_enabled:
            await self._actuator.set_tap_enabled(True)

    async def stop(self) -> None:
        """Restore hot water if a cold shot is still running."""
        if self._session.cold_shot_active:
            logger.info("Stopping during cold shot, restoring hot water")
            self._session = replace(
                self._session,
                cold_shot_active=False,
                force_cold_shot=False,
            )
            await self._actuator.set_tap_enabled(True)

    async def _apply(self, effect: Effect) -> None:
        match effect:
            case SetTapEnabled(enabled=enabled):
                await self._actuator.set_tap_enabled(enabled)
            case StateChanged():
                await self._sink.state_changed(effect)
            case SessionSummary():
                await self._sink.session_summary(effect)

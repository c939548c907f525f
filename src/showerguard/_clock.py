"""Monotonic millisecond clock port and system adapter.

Provides ClockPort (Protocol) and SystemClock for measuring elapsed time,
plus :func:`elapsed_ms` for wraparound-safe subtraction.

Durations are measured on ``time.monotonic_ns()``, which NTP adjustments
and manual clock changes do not move.  The epoch is arbitrary; only
*differences* between ``now_ms()`` calls are meaningful.

Uptime counters on small controllers wrap (``uint32`` milliseconds wrap
after ~49.7 days).  All elapsed-time arithmetic therefore goes through
:func:`elapsed_ms`, which treats timestamps as unsigned integers modulo
the clock's range.

The wall clock is a separate, optional concern: it only decorates
session summaries with a human-readable timestamp.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from typing import Protocol, runtime_checkable

CLOCK_MODULUS = 1 << 64
"""Default range of ``now_ms()`` values (unsigned 64-bit)."""

WallClock = Callable[[], datetime]
"""Callable returning the current wall-clock time (timezone-aware)."""


@runtime_checkable
class ClockPort(Protocol):
    """Monotonic clock for timing measurements.

    The default implementation wraps ``time.monotonic_ns()``.  Tests
    inject a deterministic fake clock for reproducible timing.
    """

    def now_ms(self) -> int:
        """Return monotonic time in whole milliseconds.

        Returns:
            An integer from an arbitrary epoch.  Only the *difference*
            between two calls is meaningful.
        """
        ...


class SystemClock:
    """Production clock wrapping ``time.monotonic_ns()``.

    Satisfies :class:`ClockPort` via structural subtyping, no
    base-class inheritance required (PEP 544).

    Usage::

        clock = SystemClock()
        start = clock.now_ms()
        # ... some work ...
        elapsed = elapsed_ms(clock.now_ms(), start)
    """

    def now_ms(self) -> int:
        """Return monotonic time in milliseconds."""
        return time.monotonic_ns() // 1_000_000


def elapsed_ms(now: int, since: int, *, modulus: int = CLOCK_MODULUS) -> int:
    """Return ``now - since`` as unsigned, wraparound-safe arithmetic.

    Args:
        now: The later timestamp.
        since: The earlier timestamp.
        modulus: Range of the clock producing both values.  A clock
            that wraps at ``2**32`` yields the correct elapsed time
            across the wrap as long as fewer than ``modulus``
            milliseconds actually passed.

    Returns:
        Non-negative elapsed milliseconds.
    """
    return (now - since) % modulus


def system_wall_clock() -> datetime:
    """Return the local wall-clock time as an aware datetime."""
    return datetime.now().astimezone()

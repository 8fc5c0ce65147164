"""Interval triggers.

A Schedule describes when a registration fires: first at `start`, then every
`period` seconds. Fire times are fixed-phase: fire N is at start + N * period,
regardless of how long earlier ticks took to run.

`start` and the computed fire times are values of the scheduler's clock
(time.monotonic by default), not wall-clock datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from errors import ConfigurationError
from scheduler.interval import Interval


@dataclass(frozen=True)
class Schedule:
    period: float
    start: float | None = None  # None: fire as soon as the registration is active
    repeat: int | None = None  # None: repeat forever

    def __post_init__(self) -> None:
        if self.period <= 0:
            raise ConfigurationError(f"Schedule period must be positive, got {self.period}")
        if self.repeat is not None and self.repeat < 1:
            raise ConfigurationError(f"Schedule repeat count must be at least 1, got {self.repeat}")

    @classmethod
    def every(cls, interval: Interval, *, start: float | None = None) -> "Schedule":
        return cls(period=float(interval), start=start)

    def anchored(self, now: float) -> "Schedule":
        """Return this schedule with an explicit start, using `now` when none was given."""
        if self.start is not None:
            return self
        return Schedule(period=self.period, start=now, repeat=self.repeat)

    def fire_time(self, n: int) -> float:
        """Clock time of the n-th fire (0-based)."""
        if self.start is None:
            raise ValueError("Schedule has no start; anchor it first")
        return self.start + n * self.period

    def is_exhausted(self, fired: int) -> bool:
        return self.repeat is not None and fired >= self.repeat

    def fire_times(self) -> Iterator[float]:
        n = 0
        while not self.is_exhausted(n):
            yield self.fire_time(n)
            n += 1

"""Injectable time source.

All timestamps in the engine are integer Unix seconds (UTC).  Services
receive a Clock instead of calling datetime.now() so that attempt expiry
and late-penalty math can be driven deterministically in tests.
"""

from __future__ import annotations

import datetime
from typing import Protocol, runtime_checkable

SECONDS_PER_DAY = 86_400


@runtime_checkable
class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    """Wall-clock time in whole seconds."""

    def now(self) -> int:
        return int(datetime.datetime.now(datetime.UTC).timestamp())


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: int = 1_760_000_000) -> None:
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = timestamp

    def advance(self, seconds: int = 0, *, minutes: int = 0, days: int = 0) -> int:
        self._now += seconds + minutes * 60 + days * SECONDS_PER_DAY
        return self._now

"""Clock abstraction used by the admission filter.

``RealClock`` reads the UTC wall clock.  ``FakeClock`` holds a fixed instant
that tests move explicitly, so age computations are deterministic.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Supplies "now" and duration-since computations."""

    def now(self) -> datetime: ...

    def since(self, ts: datetime) -> timedelta: ...


class RealClock:
    """Wall clock, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)

    def since(self, ts: datetime) -> timedelta:
        return self.now() - ts


class FakeClock:
    """Manually driven clock for tests."""

    def __init__(self, now: datetime) -> None:
        self._lock = threading.Lock()
        self._now = now

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def since(self, ts: datetime) -> timedelta:
        return self.now() - ts

    def set(self, now: datetime) -> None:
        with self._lock:
            self._now = now

    def step(self, delta: timedelta) -> None:
        with self._lock:
            self._now = self._now + delta

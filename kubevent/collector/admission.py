"""Age-based admission policy for incoming events.

The age of an event is measured from the later of its creation timestamp
and its last timestamp.  Event aggregation should keep ``lastTimestamp``
ahead of ``creationTimestamp`` but in practice it sometimes lags, so the
greater of the two is used to avoid dropping events that are still fresh.
``eventTime`` is not part of the comparison.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from kubevent.clock import Clock
from kubevent.models.events import RawEvent

# An absent timestamp compares as the zero instant.
ZERO_TIME = datetime.min.replace(tzinfo=UTC)


def get_event_age(event: RawEvent, clock: Clock) -> tuple[timedelta, datetime]:
    """Return ``(age, time_used_for_age)`` for *event*.

    On a tie, ``last_timestamp`` is the time used.
    """
    creation = event.creation_timestamp or ZERO_TIME
    last = event.last_timestamp or ZERO_TIME
    time_used = creation if creation > last else last
    return clock.since(time_used), time_used


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of the age policy for one event.

    ``live`` is only meaningful for discards: True when the event's effective
    time is after the watcher's startup instant, i.e. the drop is not part of
    the initial backlog.
    """

    discarded: bool
    age: timedelta
    time_used: datetime
    live: bool


class AdmissionFilter:
    """Discards events whose age exceeds ``max_event_age`` (strictly)."""

    def __init__(self, max_event_age: timedelta, clock: Clock) -> None:
        if max_event_age < timedelta(0):
            raise ValueError(f"max_event_age must not be negative, got {max_event_age}")
        self.max_event_age = max_event_age
        self._clock = clock

    def evaluate(self, event: RawEvent, startup_time: datetime) -> AdmissionDecision:
        age, time_used = get_event_age(event, self._clock)
        discarded = age > self.max_event_age
        return AdmissionDecision(
            discarded=discarded,
            age=age,
            time_used=time_used,
            live=discarded and time_used > startup_time,
        )

"""Pure half-open interval helpers used by the reservation core.

All datetimes handled here are naive UTC. ``normalize`` is the single entry
point that turns caller input into that form.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, NamedTuple, Protocol


class Interval(Protocol):
    start: datetime
    end: datetime


class Slot(NamedTuple):
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC."""

    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """``[start_a, end_a)`` and ``[start_b, end_b)`` share at least one instant."""

    return start_a < end_b and start_b < end_a


def overlaps_any(start: datetime, end: datetime, intervals: Iterable[Interval]) -> bool:
    return any(overlaps(start, end, item.start, item.end) for item in intervals)


def expiry_of(created_at: datetime, ttl_ms: int) -> datetime:
    return created_at + timedelta(milliseconds=ttl_ms)


def is_expired(created_at: datetime, ttl_ms: int, now: datetime) -> bool:
    """True once ``now`` is strictly past ``created_at + ttl_ms``."""

    return now > expiry_of(created_at, ttl_ms)


def candidate_slots(
    window_start: datetime,
    window_end: datetime,
    duration: timedelta,
    step: timedelta,
) -> Iterator[Slot]:
    """Yield ``[t, t + duration)`` for ``t`` stepping from ``window_start``.

    Stops as soon as a candidate would run past ``window_end``. Candidates may
    overlap one another when ``step < duration``.
    """

    if step <= timedelta(0):
        raise ValueError("step must be positive")
    current = window_start
    while current + duration <= window_end:
        yield Slot(current, current + duration)
        current += step


def free_slots(
    window_start: datetime,
    window_end: datetime,
    duration: timedelta,
    step: timedelta,
    occupied: Iterable[Interval],
) -> Iterator[Slot]:
    """Candidates from ``candidate_slots`` that overlap nothing in ``occupied``."""

    busy = list(occupied)
    for slot in candidate_slots(window_start, window_end, duration, step):
        if not overlaps_any(slot.start, slot.end, busy):
            yield slot

"""
Time source for decay and scheduling calculations.

Components never call datetime.now() directly; they receive a Clock so that
urgency, staleness and sweeps are reproducible in tests.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """A manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self._now = ensure_aware(start or datetime(2024, 1, 1, tzinfo=UTC))

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, when: datetime) -> None:
        self._now = ensure_aware(when)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def days_since(last_seen: datetime | None, now: datetime) -> float:
    """
    Calculate days elapsed since a timestamp.

    Args:
        last_seen: Timestamp of the last interaction (naive or aware)
        now: Current time

    Returns:
        Days elapsed as float (0 for never-seen or future timestamps)
    """
    if last_seen is None:
        return 0.0
    delta = ensure_aware(now) - ensure_aware(last_seen)
    return max(0.0, delta.total_seconds() / 86400.0)

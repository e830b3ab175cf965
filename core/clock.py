"""
core/clock.py -- Injectable time source.

Every service that compares against "now" (credential expiry, TOTP time steps,
last-login stamps) takes a Clock callable instead of calling datetime.now()
inline, so tests can freeze and advance time without patching.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware UTC now. The default Clock for all services."""
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC ISO 8601 string.

    Fixed width (always microseconds, always +00:00) keeps lexicographic order
    equal to chronological order, so stores can compare timestamps in SQL.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    """Parse a timestamp written by to_iso() back into an aware datetime."""
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment

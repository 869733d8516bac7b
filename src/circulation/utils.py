"""Time helpers shared by the circulation modules.

Timestamps are handled as timezone-aware UTC datetimes in Python and
persisted as fixed-width ISO 8601 strings, so that comparing two stored
values as text gives the same answer as comparing them as datetimes.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are assumed to already be in UTC.

    Example:
        >>> ensure_utc(datetime(2025, 1, 1)).isoformat()
        '2025-01-01T00:00:00+00:00'
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """
    Serialize a datetime for storage.

    Always emits microseconds so every stored value has the same width.

    Example:
        >>> to_iso(datetime(2025, 1, 15, tzinfo=timezone.utc))
        '2025-01-15T00:00:00.000000+00:00'
    """
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def whole_days_between(start: datetime, end: datetime) -> int:
    """
    Count the full 24-hour periods from ``start`` to ``end``.

    Partial days are truncated and the result is never negative.

    Example:
        >>> whole_days_between(datetime(2025, 1, 15), datetime(2025, 1, 20, 23))
        5
        >>> whole_days_between(datetime(2025, 1, 20), datetime(2025, 1, 15))
        0
    """
    elapsed = ensure_utc(end) - ensure_utc(start)
    if elapsed <= timedelta(0):
        return 0
    return elapsed // ONE_DAY

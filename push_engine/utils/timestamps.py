"""UTC timestamp helpers."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_utc(dt: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ISO-8601 UTC with a ``Z`` suffix.

    Naive datetimes are taken to be UTC already.

    Example:
        >>> format_utc(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))
        '2026-03-01T12:00:00.000Z'
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

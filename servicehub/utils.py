"""Shared utilities used across the servicehub client."""

import re
from datetime import datetime, timezone
from typing import Union

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_timestamp(value: Union[str, int, float, datetime]) -> datetime:
    """Parse a backend timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with or without a trailing ``Z``), epoch
    milliseconds as sent by JavaScript ``Date.now()``, and datetimes.

    Examples:
        >>> parse_timestamp("2025-03-15T10:00:00Z").isoformat()
        '2025-03-15T10:00:00+00:00'
        >>> parse_timestamp(0).year
        1970
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_valid_time(value: str) -> bool:
    """Check a wall-clock time is in 24-hour HH:MM format.

    Examples:
        >>> is_valid_time("09:30")
        True
        >>> is_valid_time("9:30")
        False
    """
    return bool(_TIME_RE.match(value.strip()))


def format_coordinates(lat: float, lng: float) -> str:
    """Render coordinates the way the location step shows a GPS fix.

    Examples:
        >>> format_coordinates(28.6139, 77.209)
        'Lat: 28.613900, Lng: 77.209000'
    """
    return f"Lat: {lat:.6f}, Lng: {lng:.6f}"

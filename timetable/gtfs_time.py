"""
GTFS service-day times.

GTFS writes times as H:MM:SS or HH:MM:SS relative to noon minus twelve hours
of the service day, and the hour may exceed 23 for trips that run past
midnight ("25:10:00" is 01:10 the next calendar day). Comparisons therefore
have to be numeric: compared as text, "9:00:00" would sort after "10:00:00".
"""

import re

from editing.errors import InvalidTimeFormatError

_TIME_RE = re.compile(r"^(\d{1,3}):([0-5]\d):([0-5]\d)$")


def parse_gtfs_time(value: str) -> int:
    """
    Convert a GTFS time string to integer seconds past service-day midnight.

    Raises:
        InvalidTimeFormatError: value is not H:MM:SS / HH:MM:SS.
    """
    if not isinstance(value, str):
        raise InvalidTimeFormatError(f"Invalid time {value!r}: expected an HH:MM:SS string.")
    match = _TIME_RE.match(value.strip())
    if match is None:
        raise InvalidTimeFormatError(f"Invalid time format: {value!r}. Must be HH:MM:SS.")
    hours, minutes, seconds = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def is_valid_gtfs_time(value: str) -> bool:
    try:
        parse_gtfs_time(value)
    except InvalidTimeFormatError:
        return False
    return True


def format_gtfs_time(seconds: int) -> str:
    """Seconds past midnight → zero-padded HH:MM:SS (hours may exceed 23)."""
    if seconds < 0:
        raise ValueError("GTFS times cannot be negative.")
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def compare_gtfs_times(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is earlier than, equal to or later than ``b``."""
    sa, sb = parse_gtfs_time(a), parse_gtfs_time(b)
    return (sa > sb) - (sa < sb)

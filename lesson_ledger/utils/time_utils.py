# lesson_ledger/utils/time_utils.py
"""
Time-of-day parsing and the single local zone used for every course.
"""

import re
from datetime import datetime, time
from zoneinfo import ZoneInfo

from lesson_ledger.core.config import settings

_HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> time:
    """
    Parse a strict ``HH:MM`` string into a ``time``.

    Raises:
        ValueError: if the value is not a zero-padded 24h time of day
    """
    if not isinstance(value, str):
        raise ValueError("Time must be a string in HH:MM format")
    match = _HHMM_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM (00:00-23:59)")
    return time(int(match.group(1)), int(match.group(2)))


def local_zone() -> ZoneInfo:
    """The configured course timezone."""
    return ZoneInfo(settings.LOCAL_TIMEZONE)


def now_local() -> datetime:
    return datetime.now(local_zone())


def to_local(moment: datetime) -> datetime:
    """Convert an aware datetime to the local zone; naive values are assumed local."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=local_zone())
    return moment.astimezone(local_zone())

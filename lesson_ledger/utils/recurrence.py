# lesson_ledger/utils/recurrence.py
"""
Weekly recurrence resolution.

A course schedule only says "every Wednesday, 10:00-11:00". These helpers turn
that into concrete calendar dates and local start times. Nothing here touches
the database or the clock, so every function can be tested with plain values.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Iterator, Optional, Protocol

from lesson_ledger.utils.time_utils import parse_hhmm, to_local

WEEKDAY_LABELS = {
    1: "Mon",
    2: "Tue",
    3: "Wed",
    4: "Thu",
    5: "Fri",
    6: "Sat",
    7: "Sun",
}


class WeeklySlot(Protocol):
    weekday: int
    start_time: str
    end_time: str
    is_active: bool


def iso_weekday(day: date) -> int:
    """Monday=1 ... Sunday=7."""
    return day.isoweekday()


def weekday_label(weekday: int) -> str:
    return WEEKDAY_LABELS.get(weekday, "")


def occurrences_within(
    schedule: WeeklySlot, from_date: date, horizon_days: int
) -> Iterator[date]:
    """
    Yield every date in ``[from_date, from_date + horizon_days]`` that falls on
    the schedule's weekday, in ascending order.

    Inactive schedules yield nothing. Each call returns a fresh generator, so
    the sequence can be walked again from the start.
    """
    if not schedule.is_active or horizon_days < 0:
        return
    for offset in range(horizon_days + 1):
        day = from_date + timedelta(days=offset)
        if iso_weekday(day) == schedule.weekday:
            yield day


def occurrence_start(day: date, start_time: str, zone: Optional[tzinfo] = None) -> datetime:
    """Combine a calendar date with an ``HH:MM`` time of day in the local zone."""
    naive = datetime.combine(day, parse_hhmm(start_time))
    if zone is not None:
        return naive.replace(tzinfo=zone)
    return to_local(naive)


def is_in_time_range(schedule: WeeklySlot, moment: datetime) -> bool:
    """True when ``moment`` falls inside the slot's time of day, both ends inclusive."""
    current = moment.strftime("%H:%M")
    return schedule.start_time <= current <= schedule.end_time

"""Pydantic schemas for course reminder scheduling."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class UpcomingOccurrence(BaseModel):
    """A concrete dated lesson resolved from a weekly schedule."""
    course_id: str
    course_name: str
    schedule_id: str
    schedule_date: date
    weekday: int
    start_time: str
    end_time: str
    location: Optional[str] = None
    instructor: Optional[str] = None
    has_attendance: bool = False


class DueReminder(UpcomingOccurrence):
    """An occurrence inside the reminder window whose reminder is still unsent."""
    starts_at: datetime
    attendance_id: Optional[str] = None


class ReminderPassResult(BaseModel):
    """Outcome counters of one scheduler pass."""
    trigger: str = "tick"
    started_at: datetime
    courses_scanned: int = 0
    occurrences_evaluated: int = 0
    records_created: int = 0
    reminders_sent: int = 0
    dispatch_failures: int = 0
    skipped_no_channel: int = 0
    course_errors: int = 0
    occurrence_errors: int = 0
    aborted: bool = False
    sent_tags: List[str] = Field(default_factory=list)

# lesson_ledger/schemas/attendance.py
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AttendanceStatusEnum(str, Enum):
    pending = "pending"
    attend = "attend"
    absent = "absent"


class AttendanceTarget(str, Enum):
    """Statuses a caller may move a pending record into."""
    attend = "attend"
    absent = "absent"


class AttendanceCreate(BaseModel):
    course_id: str
    schedule_date: date


class AttendanceTransition(BaseModel):
    status: AttendanceTarget
    notes: Optional[str] = None


class AttendanceRecord(BaseModel):
    id: str
    course_id: str
    schedule_date: date
    status: AttendanceStatusEnum
    check_in_time: Optional[datetime] = None
    notes: Optional[str] = None
    reminder_sent: bool = False

    model_config = {"from_attributes": True}


class AttendanceWithCourse(AttendanceRecord):
    course_name: str

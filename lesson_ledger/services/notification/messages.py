# lesson_ledger/services/notification/messages.py
"""Notification payloads for course reminders and consumption receipts."""

from datetime import date
from typing import Any, Dict, Optional

from lesson_ledger.core.config import settings
from lesson_ledger.models.attendance_record import AttendanceRecord
from lesson_ledger.models.course import Course
from lesson_ledger.models.course_schedule import CourseSchedule
from lesson_ledger.models.session_consumption import SessionConsumption
from lesson_ledger.utils.recurrence import iso_weekday, weekday_label

REMINDER_TITLE = "Course reminder"
CONSUMPTION_TITLE = "Sessions consumed"


def reminder_tag(course_id: str, schedule_date: date) -> str:
    return f"course-{course_id}-{schedule_date.isoformat()}"


def build_reminder_body(
    course: Course, schedule: Optional[CourseSchedule], schedule_date: date
) -> str:
    """e.g. ``Jan 03 (Wed) Piano 10:00-11:00 Location: Room 2 Instructor: Ms. Li``."""
    message = (
        f"{schedule_date.strftime('%b %d')} ({weekday_label(iso_weekday(schedule_date))}) "
        f"{course.name}"
    )
    if schedule is not None:
        message += f" {schedule.start_time}-{schedule.end_time}"
        if schedule.location:
            message += f" Location: {schedule.location}"
        if schedule.instructor:
            message += f" Instructor: {schedule.instructor}"
    return message


def build_course_reminder(
    course: Course, schedule: Optional[CourseSchedule], schedule_date: date
) -> Dict[str, Any]:
    return {
        "title": REMINDER_TITLE,
        "body": build_reminder_body(course, schedule, schedule_date),
        "icon": settings.NOTIFICATION_ICON,
        "tag": reminder_tag(course.id, schedule_date),
        "requireInteraction": True,
        "actions": [
            {"action": "attend", "title": "Attend"},
            {"action": "absent", "title": "Take leave"},
        ],
        "data": {
            "type": "course_reminder",
            "courseId": course.id,
            "courseName": course.name,
            "date": schedule_date.isoformat(),
            "action": "reminder",
        },
    }


def build_consumption_confirmation(
    course: Course, attendance: AttendanceRecord, consumption: SessionConsumption
) -> Dict[str, Any]:
    return {
        "title": CONSUMPTION_TITLE,
        "body": (
            f"{course.name}: {consumption.sessions_consumed} "
            f"{consumption.session_type_label}(s) consumed"
        ),
        "icon": settings.NOTIFICATION_ICON,
        "tag": f"consumption-{consumption.id}",
        "data": {
            "type": "consumption_confirmation",
            "courseId": course.id,
            "attendanceId": attendance.id,
            "consumptionId": consumption.id,
        },
    }

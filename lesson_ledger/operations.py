# lesson_ledger/operations.py
"""
Operations the core offers to an outer (HTTP, CLI) layer.

Every ledger operation takes an open session and the caller's ``user_id``;
records are looked up through the caller's courses, so a foreign id behaves
exactly like a missing one (``NotFoundError``).
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from lesson_ledger import scheduler
from lesson_ledger.background_tasks import reminder_tasks
from lesson_ledger.background_tasks.reminder_tasks import CourseReminderRunner
from lesson_ledger.crud.crud_attendance import attendance as crud_attendance
from lesson_ledger.crud.crud_course import active_schedules, course as crud_course
from lesson_ledger.crud.crud_notification_channel import notification_channel as crud_channel
from lesson_ledger.models.attendance_record import AttendanceRecord
from lesson_ledger.models.notification_channel import NotificationChannel
from lesson_ledger.models.session_consumption import SessionConsumption
from lesson_ledger.schemas.attendance import AttendanceTransition
from lesson_ledger.schemas.consumption import ConsumptionCreate, SessionSummary
from lesson_ledger.schemas.notification import ChannelSubscription
from lesson_ledger.schemas.reminder import DueReminder, ReminderPassResult, UpcomingOccurrence
from lesson_ledger.services import session_ledger
from lesson_ledger.services.notification import get_default_dispatcher
from lesson_ledger.services.notification.dispatcher_interface import (
    DispatchResult,
    NotificationDispatcher,
)
from lesson_ledger.services.notification.messages import (
    build_consumption_confirmation,
    build_course_reminder,
)
from lesson_ledger.utils.recurrence import iso_weekday
from lesson_ledger.utils.time_utils import now_local, to_local

logger = logging.getLogger(__name__)


def _runner(runner: Optional[CourseReminderRunner]) -> CourseReminderRunner:
    return runner or reminder_tasks.get_runner()


# --------------------------------------------------------------------- #
# Attendance
# --------------------------------------------------------------------- #

def ensure_attendance(
    db: Session, *, user_id: str, course_id: str, schedule_date: date
) -> AttendanceRecord:
    """Return the live record for the date, creating a pending one if missing."""
    course = crud_course.get_for_user(db, course_id=course_id, user_id=user_id)
    return crud_attendance.ensure_record(db, course_id=course.id, schedule_date=schedule_date)


def transition_attendance(
    db: Session, *, user_id: str, attendance_id: str, transition_in: AttendanceTransition
) -> AttendanceRecord:
    record = crud_attendance.get_for_user(db, attendance_id=attendance_id, user_id=user_id)
    return crud_attendance.transition(
        db, record=record, to_status=transition_in.status, notes=transition_in.notes
    )


# --------------------------------------------------------------------- #
# Session ledger
# --------------------------------------------------------------------- #

def record_consumption(
    db: Session,
    *,
    user_id: str,
    consumption_in: ConsumptionCreate,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> SessionConsumption:
    """
    Consume sessions for an attended lesson.

    With a dispatcher, a confirmation is pushed to the user afterwards. That
    push is best-effort: its failure is logged and the consumption stands.
    """
    record = crud_attendance.get_for_user(
        db, attendance_id=consumption_in.attendance_id, user_id=user_id
    )
    row = session_ledger.record_consumption(
        db,
        attendance=record,
        sessions_consumed=consumption_in.sessions_consumed,
        session_type=consumption_in.session_type,
        description=consumption_in.description,
    )

    if dispatcher is not None:
        try:
            payload = build_consumption_confirmation(row.course, record, row)
            result = dispatcher.notify(user_id, payload)
            if not result.ok and not result.no_channels:
                logger.warning(
                    f"Consumption confirmation for {row.id} not delivered: {result.error_summary()}"
                )
        except Exception as e:
            logger.error(f"Failed to send consumption confirmation for {row.id}: {e}")
    return row


def delete_consumption(db: Session, *, user_id: str, consumption_id: str) -> SessionConsumption:
    return session_ledger.delete_consumption(db, consumption_id=consumption_id, user_id=user_id)


def course_session_summary(db: Session, *, user_id: str, course_id: str) -> SessionSummary:
    course = crud_course.get_for_user(db, course_id=course_id, user_id=user_id)
    return session_ledger.course_session_summary(db, course)


# --------------------------------------------------------------------- #
# Reminders
# --------------------------------------------------------------------- #

def list_due_reminders(
    db: Session,
    *,
    user_id: str,
    now: Optional[datetime] = None,
    runner: Optional[CourseReminderRunner] = None,
) -> List[DueReminder]:
    return _runner(runner).list_due_reminders(db, user_id, now=now)


def list_upcoming_courses(
    db: Session,
    *,
    user_id: str,
    days: int = 1,
    now: Optional[datetime] = None,
    runner: Optional[CourseReminderRunner] = None,
) -> List[UpcomingOccurrence]:
    return _runner(runner).list_upcoming(db, user_id, days=days, now=now)


def list_today_courses(
    db: Session,
    *,
    user_id: str,
    now: Optional[datetime] = None,
    runner: Optional[CourseReminderRunner] = None,
) -> List[UpcomingOccurrence]:
    return _runner(runner).list_today(db, user_id, now=now)


def run_reminder_pass(
    now: Optional[datetime] = None, runner: Optional[CourseReminderRunner] = None
) -> ReminderPassResult:
    """Manual trigger; waits for a pass already in progress to finish first."""
    return _runner(runner).run_pass(now=now, trigger="manual")


def start_scheduler(runner: Optional[CourseReminderRunner] = None):
    return scheduler.start_scheduler(runner)


def stop_scheduler(wait: bool = True) -> None:
    scheduler.stop_scheduler(wait=wait)


# --------------------------------------------------------------------- #
# Notification channels
# --------------------------------------------------------------------- #

def register_channel(
    db: Session, *, user_id: str, subscription: Dict[str, Any]
) -> NotificationChannel:
    sub = ChannelSubscription.model_validate(subscription)
    return crud_channel.register(db, user_id=user_id, subscription=sub)


def unregister_channel(db: Session, *, user_id: str, endpoint: str) -> bool:
    return crud_channel.remove(db, user_id=user_id, endpoint=endpoint)


def send_test_notification(
    db: Session,
    *,
    user_id: str,
    course_id: str,
    dispatcher: Optional[NotificationDispatcher] = None,
    now: Optional[datetime] = None,
) -> DispatchResult:
    """
    Push a sample reminder for tomorrow's lesson of a course.

    Nothing is recorded: the attendance ledger and reminder flags are untouched.
    """
    course = crud_course.get_for_user(db, course_id=course_id, user_id=user_id)
    tomorrow = to_local(now or now_local()).date() + timedelta(days=1)
    schedules = active_schedules(course, weekday=iso_weekday(tomorrow)) or active_schedules(course)
    payload = build_course_reminder(course, schedules[0] if schedules else None, tomorrow)
    payload["tag"] += "-test"
    payload["data"]["action"] = "test"
    return (dispatcher or get_default_dispatcher()).notify(user_id, payload)

"""
Background tasks for course reminders.

This module implements the reminder pass that:
1. Loads every active course with its active weekly schedules
2. Resolves the schedules into dated occurrences over the lookahead window
3. Makes sure an attendance record exists for each occurrence
4. Sends one reminder per (course, date) once the lesson is less than the
   reminder window away, and flags the record so it is never sent twice

The periodic tick and the daily backstop run the very same pass; its outcome
depends only on the current time and the stored records, so running it any
number of times converges to the same state.
"""

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from lesson_ledger.core.config import settings
from lesson_ledger.core.exceptions import DispatchFailureError, ReminderAlreadySentError
from lesson_ledger.crud.crud_attendance import attendance as crud_attendance
from lesson_ledger.crud.crud_course import active_schedules, course as crud_course
from lesson_ledger.db.session import SessionLocal
from lesson_ledger.models.attendance_record import AttendanceRecord
from lesson_ledger.models.course import Course
from lesson_ledger.models.course_schedule import CourseSchedule
from lesson_ledger.schemas.reminder import DueReminder, ReminderPassResult, UpcomingOccurrence
from lesson_ledger.services.notification import get_default_dispatcher
from lesson_ledger.services.notification.dispatcher_interface import (
    ChannelResult,
    DispatchResult,
    NotificationDispatcher,
)
from lesson_ledger.services.notification.messages import build_course_reminder
from lesson_ledger.utils.recurrence import occurrence_start, occurrences_within
from lesson_ledger.utils.time_utils import now_local, to_local

logger = logging.getLogger(__name__)


class CourseReminderRunner:
    """
    Evaluates course occurrences and dispatches reminders.

    Passes are serialized by an in-process lock, so the periodic job and a
    manual trigger never evaluate the same occurrence at the same time. The
    stop token is checked between courses.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lookahead_days: Optional[int] = None,
        reminder_window: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self._dispatcher = dispatcher
        self.clock = clock or now_local
        self.lookahead_days = (
            lookahead_days if lookahead_days is not None else settings.REMINDER_LOOKAHEAD_DAYS
        )
        self.reminder_window = reminder_window or timedelta(hours=settings.REMINDER_WINDOW_HOURS)
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_default_dispatcher()
        return self._dispatcher

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def stop(self) -> None:
        """Ask a running pass to stop after the course it is working on."""
        self._stop_event.set()

    def resume(self) -> None:
        self._stop_event.clear()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------ #
    # Reminder pass
    # ------------------------------------------------------------------ #

    def run_pass(self, now: Optional[datetime] = None, trigger: str = "tick") -> ReminderPassResult:
        now = to_local(now or self.clock())
        result = ReminderPassResult(trigger=trigger, started_at=now)

        with self._pass_lock:
            db = self.session_factory()
            try:
                courses = crud_course.get_active_with_schedules(db)
                for course in courses:
                    if self.stopped:
                        result.aborted = True
                        logger.info(
                            f"Reminder pass ({trigger}) stopped after {result.courses_scanned} course(s)"
                        )
                        break
                    result.courses_scanned += 1
                    course_id = course.id
                    try:
                        self._process_course(db, course, now, result)
                    except Exception as e:
                        # One broken course must not block the others
                        result.course_errors += 1
                        logger.error(
                            f"Reminder evaluation failed for course {course_id}: {e}",
                            exc_info=True,
                        )
                        db.rollback()
            finally:
                db.close()

        logger.info(
            f"Reminder pass ({trigger}) complete: {result.courses_scanned} courses, "
            f"{result.occurrences_evaluated} occurrences, {result.records_created} records created, "
            f"{result.reminders_sent} sent, {result.dispatch_failures} failed, "
            f"{result.skipped_no_channel} without channel"
        )
        return result

    def run_backstop_pass(self, now: Optional[datetime] = None) -> ReminderPassResult:
        return self.run_pass(now=now, trigger="backstop")

    def _process_course(
        self, db: Session, course: Course, now: datetime, result: ReminderPassResult
    ) -> None:
        # The ledger key is (course, date): when two schedules land on the same
        # day, the one starting first decides the reminder.
        for schedule, day in self._occurrences(course, now.date(), self.lookahead_days):
            result.occurrences_evaluated += 1
            try:
                self._evaluate_occurrence(db, course, schedule, day, now, result)
            except Exception as e:
                result.occurrence_errors += 1
                logger.error(
                    f"Failed to evaluate course {course.id} on {day}: {e}", exc_info=True
                )
                db.rollback()

    @staticmethod
    def _occurrences(
        course: Course, from_date: date, horizon_days: int
    ) -> List[Tuple[CourseSchedule, date]]:
        seen = set()
        pairs = []
        for schedule in active_schedules(course):
            for day in occurrences_within(schedule, from_date, horizon_days):
                if day in seen:
                    continue
                seen.add(day)
                pairs.append((schedule, day))
        return sorted(pairs, key=lambda pair: pair[1])

    def _evaluate_occurrence(
        self,
        db: Session,
        course: Course,
        schedule: CourseSchedule,
        day: date,
        now: datetime,
        result: ReminderPassResult,
    ) -> None:
        record, created = crud_attendance.get_or_create(db, course_id=course.id, schedule_date=day)
        if created:
            result.records_created += 1

        delta = occurrence_start(day, schedule.start_time) - now
        if delta <= timedelta(0) or delta > self.reminder_window:
            return
        if record.reminder_sent:
            return

        # Re-read right before dispatching so a reminder confirmed by another
        # writer since our first read is not sent again
        db.refresh(record)
        if record.reminder_sent:
            return

        payload = build_course_reminder(course, schedule, day)
        dispatch = self._dispatch(course.user_id, payload)

        if dispatch.no_channels:
            result.skipped_no_channel += 1
            logger.info(
                f"No notification channel for user {course.user_id}; "
                f"reminder for course {course.id} on {day} left pending"
            )
            return
        if not dispatch.ok:
            result.dispatch_failures += 1
            failure = DispatchFailureError(course.user_id, dispatch.error_summary())
            logger.warning(f"{failure.message}; will retry on the next pass")
            return

        try:
            crud_attendance.mark_reminder_sent(db, record=record)
        except ReminderAlreadySentError:
            logger.warning(
                f"Reminder for attendance {record.id} was confirmed concurrently; "
                f"a duplicate notification may have been delivered"
            )
            return

        result.reminders_sent += 1
        result.sent_tags.append(payload["tag"])
        logger.debug(f"Sent reminder {payload['tag']} to user {course.user_id}")

    def _dispatch(self, user_id: str, payload: dict) -> DispatchResult:
        try:
            return self.dispatcher.notify(user_id, payload)
        except Exception as e:
            logger.error(f"Dispatcher raised for user {user_id}: {e}", exc_info=True)
            # A transport failure, not "no channel": the occurrence stays due
            return DispatchResult(
                user_id=user_id, channels=[ChannelResult(endpoint="*", ok=False, error=str(e))]
            )

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #

    def list_due_reminders(
        self, db: Session, user_id: str, now: Optional[datetime] = None
    ) -> List[DueReminder]:
        """
        Occurrences of the user's courses that are inside the reminder window
        and whose reminder has not been confirmed yet. Nothing is written.
        """
        now = to_local(now or self.clock())
        due = []
        for course in crud_course.get_active_with_schedules(db, user_id=user_id):
            for schedule, day in self._occurrences(course, now.date(), self.lookahead_days):
                starts_at = occurrence_start(day, schedule.start_time)
                delta = starts_at - now
                if delta <= timedelta(0) or delta > self.reminder_window:
                    continue
                record = crud_attendance.get_by_course_and_date(
                    db, course_id=course.id, schedule_date=day
                )
                if record is not None and record.reminder_sent:
                    continue
                due.append(
                    DueReminder(
                        **_occurrence_fields(course, schedule, day, record),
                        starts_at=starts_at,
                        attendance_id=record.id if record else None,
                    )
                )
        return sorted(due, key=lambda r: r.starts_at)

    def list_upcoming(
        self, db: Session, user_id: str, days: int = 1, now: Optional[datetime] = None
    ) -> List[UpcomingOccurrence]:
        """Every scheduled lesson of the user's active courses within ``days`` days."""
        now = to_local(now or self.clock())
        upcoming = []
        for course in crud_course.get_active_with_schedules(db, user_id=user_id):
            for schedule in active_schedules(course):
                for day in occurrences_within(schedule, now.date(), days):
                    record = crud_attendance.get_by_course_and_date(
                        db, course_id=course.id, schedule_date=day
                    )
                    upcoming.append(
                        UpcomingOccurrence(**_occurrence_fields(course, schedule, day, record))
                    )
        return sorted(upcoming, key=lambda o: (o.schedule_date, o.start_time, o.course_id))

    def list_today(
        self, db: Session, user_id: str, now: Optional[datetime] = None
    ) -> List[UpcomingOccurrence]:
        return self.list_upcoming(db, user_id, days=0, now=now)


def _occurrence_fields(
    course: Course,
    schedule: CourseSchedule,
    day: date,
    record: Optional[AttendanceRecord],
) -> dict:
    return {
        "course_id": course.id,
        "course_name": course.name,
        "schedule_id": schedule.id,
        "schedule_date": day,
        "weekday": schedule.weekday,
        "start_time": schedule.start_time,
        "end_time": schedule.end_time,
        "location": schedule.location,
        "instructor": schedule.instructor,
        "has_attendance": record is not None,
    }


# Global runner used by the scheduler jobs
_runner: Optional[CourseReminderRunner] = None


def get_runner() -> CourseReminderRunner:
    global _runner
    if _runner is None:
        _runner = CourseReminderRunner()
    return _runner


def set_runner(runner: Optional[CourseReminderRunner]) -> None:
    global _runner
    _runner = runner


def check_course_reminders():
    """
    Main scheduler task: evaluate upcoming occurrences and send reminders.

    Runs every REMINDER_TICK_MINUTES via APScheduler.
    """
    try:
        get_runner().run_pass(trigger="tick")
    except Exception as e:
        logger.error(f"Error in check_course_reminders: {e}", exc_info=True)


def backstop_course_reminders():
    """
    Daily safety net in case the periodic ticks missed a reminder window.

    Runs once a day at REMINDER_BACKSTOP_HOUR local time.
    """
    try:
        get_runner().run_backstop_pass()
    except Exception as e:
        logger.error(f"Error in backstop_course_reminders: {e}", exc_info=True)

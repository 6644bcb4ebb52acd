"""
Tests for the course reminder pass.

Timeline used throughout: the course meets on Wednesdays 10:00-11:00 UTC,
so the lesson on 2024-01-03 enters the 24 hour reminder window at
2024-01-02 10:00.
"""

import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from lesson_ledger.background_tasks import reminder_tasks
from lesson_ledger.background_tasks.reminder_tasks import CourseReminderRunner
from lesson_ledger.crud import crud_attendance, crud_course
from lesson_ledger.models.attendance_record import AttendanceRecord
from lesson_ledger.schemas.course import CourseUpdate
from tests.utils.course import create_random_course
from tests.utils.notification import RecordingDispatcher

LESSON_DAY = date(2024, 1, 3)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def _records(session_factory, course_id: str):
    db = session_factory()
    try:
        return (
            db.query(AttendanceRecord)
            .filter(AttendanceRecord.course_id == course_id)
            .order_by(AttendanceRecord.schedule_date)
            .all()
        )
    finally:
        db.close()


@pytest.fixture
def runner(session_factory, dispatcher):
    return CourseReminderRunner(
        session_factory=session_factory,
        dispatcher=dispatcher,
        lookahead_days=7,
        reminder_window=timedelta(hours=24),
    )


class TestReminderPass:

    def test_early_pass_creates_pending_record_only(self, db_session: Session, runner, dispatcher, session_factory):
        course = create_random_course(db_session)

        result = runner.run_pass(now=at(1, 9))

        assert result.records_created == 1
        assert result.reminders_sent == 0
        assert dispatcher.sent == []
        records = _records(session_factory, course.id)
        assert [(r.schedule_date, r.status, r.reminder_sent) for r in records] == [
            (LESSON_DAY, "pending", False)
        ]

    def test_record_inserted_by_another_writer_is_not_counted(
        self, db_session: Session, runner, session_factory, monkeypatch
    ):
        course = create_random_course(db_session)
        ledger = crud_attendance.attendance
        real_lookup = ledger.get_by_course_and_date
        raced = []

        def lookup_losing_the_race(db, *, course_id, schedule_date):
            # The first lookup misses; another writer inserts the row right after
            if not raced:
                raced.append(schedule_date)
                other = session_factory()
                try:
                    ledger.ensure_record(other, course_id=course_id, schedule_date=schedule_date)
                finally:
                    other.close()
                return None
            return real_lookup(db, course_id=course_id, schedule_date=schedule_date)

        monkeypatch.setattr(ledger, "get_by_course_and_date", lookup_losing_the_race)

        result = runner.run_pass(now=at(1, 9))

        assert raced == [LESSON_DAY]
        assert result.occurrences_evaluated == 1
        assert result.records_created == 0
        assert result.occurrence_errors == 0
        assert len(_records(session_factory, course.id)) == 1

    def test_reminder_sent_exactly_once_across_ticks(self, db_session: Session, runner, dispatcher, session_factory):
        course = create_random_course(db_session)

        for now in (at(2, 9), at(2, 11), at(2, 12), at(2, 13)):
            runner.run_pass(now=now)
        runner.run_backstop_pass(now=at(2, 20))

        assert dispatcher.tags == [f"course-{course.id}-2024-01-03"]
        assert _records(session_factory, course.id)[0].reminder_sent is True

    def test_window_boundaries(self, db_session: Session, runner, dispatcher):
        create_random_course(db_session)

        assert runner.run_pass(now=at(2, 9, 59)).reminders_sent == 0
        assert runner.run_pass(now=at(2, 10)).reminders_sent == 1

    def test_started_lesson_is_not_reminded(self, db_session: Session, runner, dispatcher, session_factory):
        course = create_random_course(db_session)

        result = runner.run_pass(now=at(3, 10))

        assert result.reminders_sent == 0
        assert dispatcher.sent == []
        # The record for today still exists so the lesson can be checked in
        assert _records(session_factory, course.id)[0].schedule_date == LESSON_DAY

    def test_payload_describes_the_lesson(self, db_session: Session, runner, dispatcher):
        course = create_random_course(db_session, name="Piano")

        runner.run_pass(now=at(2, 11))

        user_id, payload = dispatcher.sent[0]
        assert user_id == "user_123"
        assert payload["tag"] == f"course-{course.id}-2024-01-03"
        assert payload["body"] == "Jan 03 (Wed) Piano 10:00-11:00 Location: Room 2"
        assert payload["data"] == {
            "type": "course_reminder",
            "courseId": course.id,
            "courseName": "Piano",
            "date": "2024-01-03",
            "action": "reminder",
        }

    def test_dispatch_failure_is_retried_next_pass(self, db_session: Session, runner, dispatcher, session_factory):
        course = create_random_course(db_session)
        dispatcher.mode = "fail"

        failed = runner.run_pass(now=at(2, 11))
        assert failed.dispatch_failures == 1
        assert _records(session_factory, course.id)[0].reminder_sent is False

        dispatcher.mode = "ok"
        retried = runner.run_pass(now=at(2, 12))

        assert retried.reminders_sent == 1
        assert _records(session_factory, course.id)[0].reminder_sent is True

    def test_user_without_channel_is_skipped(self, db_session: Session, runner, dispatcher, session_factory):
        course = create_random_course(db_session)
        dispatcher.mode = "no_channel"

        result = runner.run_pass(now=at(2, 11))

        assert result.skipped_no_channel == 1
        assert result.dispatch_failures == 0
        assert _records(session_factory, course.id)[0].reminder_sent is False

    def test_raising_dispatcher_counts_as_failure(self, db_session: Session, session_factory):
        create_random_course(db_session)
        broken = MagicMock()
        broken.notify.side_effect = RuntimeError("transport exploded")
        runner = CourseReminderRunner(session_factory=session_factory, dispatcher=broken)

        result = runner.run_pass(now=at(2, 11))

        assert result.dispatch_failures == 1
        assert result.course_errors == 0

    def test_same_day_schedules_share_one_record(self, db_session: Session, runner, dispatcher, session_factory):
        course = create_random_course(
            db_session, schedules=[(3, "15:00", "16:00"), (3, "10:00", "11:00")]
        )

        runner.run_pass(now=at(2, 11))
        runner.run_pass(now=at(2, 16))

        assert len(_records(session_factory, course.id)) == 1
        assert len(dispatcher.sent) == 1
        # The earliest slot of the day decides the reminder
        assert "10:00-11:00" in dispatcher.sent[0][1]["body"]

    def test_inactive_course_is_ignored(self, db_session: Session, runner, dispatcher, session_factory):
        course = create_random_course(db_session)
        crud_course.course.update(db_session, db_obj=course, obj_in=CourseUpdate(is_active=False))

        result = runner.run_pass(now=at(2, 11))

        assert result.courses_scanned == 0
        assert _records(session_factory, course.id) == []

    def test_broken_course_does_not_block_others(self, db_session: Session, runner, dispatcher, monkeypatch):
        create_random_course(db_session, name="Broken")
        healthy = create_random_course(db_session, name="Healthy")
        real_active_schedules = reminder_tasks.active_schedules

        def flaky(course, weekday=None):
            if course.name == "Broken":
                raise RuntimeError("corrupt schedule")
            return real_active_schedules(course, weekday)

        monkeypatch.setattr(reminder_tasks, "active_schedules", flaky)

        result = runner.run_pass(now=at(2, 11))

        assert result.course_errors == 1
        assert result.reminders_sent == 1
        assert dispatcher.tags == [f"course-{healthy.id}-2024-01-03"]

    def test_backstop_catches_missed_ticks(self, db_session: Session, runner, dispatcher):
        create_random_course(db_session)

        result = runner.run_backstop_pass(now=at(2, 20))

        assert result.trigger == "backstop"
        assert result.reminders_sent == 1

    def test_tick_and_backstop_converge(self, db_session: Session, session_factory):
        course = create_random_course(db_session)
        tick_dispatcher = RecordingDispatcher()
        backstop_dispatcher = RecordingDispatcher()
        ticks = CourseReminderRunner(session_factory=session_factory, dispatcher=tick_dispatcher)
        backstop = CourseReminderRunner(session_factory=session_factory, dispatcher=backstop_dispatcher)

        ticks.run_pass(now=at(2, 11))
        after_tick = [(r.schedule_date, r.reminder_sent) for r in _records(session_factory, course.id)]
        backstop.run_backstop_pass(now=at(2, 20))
        after_backstop = [(r.schedule_date, r.reminder_sent) for r in _records(session_factory, course.id)]

        assert after_tick == after_backstop
        assert len(tick_dispatcher.sent) + len(backstop_dispatcher.sent) == 1

    def test_reminder_confirmed_elsewhere_is_not_resent(self, db_session: Session, runner, dispatcher):
        course = create_random_course(db_session)
        record = crud_attendance.attendance.ensure_record(
            db_session, course_id=course.id, schedule_date=LESSON_DAY
        )
        crud_attendance.attendance.mark_reminder_sent(db_session, record=record)

        result = runner.run_pass(now=at(2, 11))

        assert result.reminders_sent == 0
        assert dispatcher.sent == []

    def test_concurrent_passes_send_once(self, db_session: Session, runner, dispatcher):
        create_random_course(db_session)
        results = []

        threads = [
            threading.Thread(target=lambda: results.append(runner.run_pass(now=at(2, 11))))
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r.reminders_sent for r in results) == 1
        assert len(dispatcher.sent) == 1

    def test_stop_token_aborts_pass(self, db_session: Session, runner, dispatcher):
        create_random_course(db_session)
        runner.stop()

        stopped = runner.run_pass(now=at(2, 11))
        assert stopped.aborted is True
        assert stopped.courses_scanned == 0

        runner.resume()
        assert runner.run_pass(now=at(2, 11)).reminders_sent == 1


class TestReminderViews:

    def test_list_due_reminders_is_read_only(self, db_session: Session, runner, session_factory):
        course = create_random_course(db_session)

        due = runner.list_due_reminders(db_session, "user_123", now=at(2, 11))

        assert [(d.course_id, d.schedule_date, d.attendance_id) for d in due] == [
            (course.id, LESSON_DAY, None)
        ]
        assert due[0].starts_at == at(3, 10)
        assert _records(session_factory, course.id) == []

    def test_list_due_reminders_excludes_sent_and_other_users(self, db_session: Session, runner):
        create_random_course(db_session, user_id="someone_else")
        create_random_course(db_session)
        runner.run_pass(now=at(2, 11))

        assert runner.list_due_reminders(db_session, "user_123", now=at(2, 12)) == []

    def test_list_upcoming_reports_attendance(self, db_session: Session, runner):
        course = create_random_course(db_session, schedules=[(3, "10:00", "11:00"), (5, "18:00", "19:00")])
        crud_attendance.attendance.ensure_record(
            db_session, course_id=course.id, schedule_date=LESSON_DAY
        )

        upcoming = runner.list_upcoming(db_session, "user_123", days=7, now=at(1, 8))

        assert [(o.schedule_date, o.start_time, o.has_attendance) for o in upcoming] == [
            (date(2024, 1, 3), "10:00", True),
            (date(2024, 1, 5), "18:00", False),
        ]

    def test_list_today(self, db_session: Session, runner):
        create_random_course(db_session)

        assert [o.schedule_date for o in runner.list_today(db_session, "user_123", now=at(3, 7))] == [LESSON_DAY]
        assert runner.list_today(db_session, "user_123", now=at(4, 7)) == []


class TestSchedulerJobs:

    def test_job_uses_global_runner(self, db_session: Session, runner, dispatcher, monkeypatch):
        create_random_course(db_session)
        monkeypatch.setattr(runner, "clock", lambda: at(2, 11))
        reminder_tasks.set_runner(runner)

        reminder_tasks.check_course_reminders()

        assert len(dispatcher.sent) == 1

    def test_job_logs_instead_of_raising(self):
        failing = MagicMock()
        failing.run_pass.side_effect = RuntimeError("db down")
        failing.run_backstop_pass.side_effect = RuntimeError("db down")
        reminder_tasks.set_runner(failing)

        reminder_tasks.check_course_reminders()
        reminder_tasks.backstop_course_reminders()

        failing.run_pass.assert_called_once_with(trigger="tick")
        failing.run_backstop_pass.assert_called_once()

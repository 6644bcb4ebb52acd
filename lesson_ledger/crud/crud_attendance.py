"""CRUD operations for attendance records."""

import logging
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lesson_ledger.constants.attendance import AttendanceStatus
from lesson_ledger.core.exceptions import (
    ConflictRetryableError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ReminderAlreadySentError,
)
from lesson_ledger.models.attendance_record import AttendanceRecord
from lesson_ledger.models.course import Course
from lesson_ledger.models.session_consumption import SessionConsumption

logger = logging.getLogger(__name__)


class CRUDAttendance:
    """
    Attendance ledger.

    Owns the one-live-record-per-(course, date) rule and the
    pending -> attend | absent state machine.
    """

    model = AttendanceRecord

    def get(self, db: Session, *, attendance_id: str) -> Optional[AttendanceRecord]:
        return (
            db.query(self.model)
            .filter(self.model.id == attendance_id, self.model.deleted_at.is_(None))
            .first()
        )

    def get_for_user(
        self, db: Session, *, attendance_id: str, user_id: str
    ) -> AttendanceRecord:
        """Fetch a live record whose course belongs to the user, or raise ``NotFoundError``."""
        record = (
            db.query(self.model)
            .join(Course, Course.id == self.model.course_id)
            .filter(
                self.model.id == attendance_id,
                self.model.deleted_at.is_(None),
                Course.user_id == user_id,
                Course.deleted_at.is_(None),
            )
            .first()
        )
        if not record:
            raise NotFoundError("Attendance record", attendance_id)
        return record

    def get_by_course_and_date(
        self, db: Session, *, course_id: str, schedule_date: date
    ) -> Optional[AttendanceRecord]:
        return (
            db.query(self.model)
            .filter(
                self.model.course_id == course_id,
                self.model.schedule_date == schedule_date,
                self.model.deleted_at.is_(None),
            )
            .first()
        )

    def get_multi_by_course(
        self, db: Session, *, course_id: str, skip: int = 0, limit: int = 100
    ) -> List[AttendanceRecord]:
        return (
            db.query(self.model)
            .filter(self.model.course_id == course_id, self.model.deleted_at.is_(None))
            .order_by(self.model.schedule_date.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def ensure_record(
        self, db: Session, *, course_id: str, schedule_date: date
    ) -> AttendanceRecord:
        """Get or create the record for ``(course_id, schedule_date)``."""
        record, _ = self.get_or_create(db, course_id=course_id, schedule_date=schedule_date)
        return record

    def get_or_create(
        self, db: Session, *, course_id: str, schedule_date: date
    ) -> Tuple[AttendanceRecord, bool]:
        """
        Like ``ensure_record``, also telling whether this call inserted the row.

        Safe under concurrent callers: the partial unique index rejects a
        second insert, and the loser re-reads the winner's row (``created`` is
        then False).
        """
        existing = self.get_by_course_and_date(
            db, course_id=course_id, schedule_date=schedule_date
        )
        if existing:
            return existing, False

        try:
            return self._insert_pending(db, course_id=course_id, schedule_date=schedule_date), True
        except ConflictRetryableError:
            winner = self.get_by_course_and_date(
                db, course_id=course_id, schedule_date=schedule_date
            )
            if winner is None:
                # The conflict was not the uniqueness rule; nothing to fall back to
                raise
            logger.debug(
                f"Attendance race resolved by re-read: course={course_id}, date={schedule_date}"
            )
            return winner, False

    def _insert_pending(
        self, db: Session, *, course_id: str, schedule_date: date
    ) -> AttendanceRecord:
        db_obj = self.model(
            course_id=course_id,
            schedule_date=schedule_date,
            status=AttendanceStatus.PENDING,
            reminder_sent=False,
        )
        try:
            db.add(db_obj)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictRetryableError(
                f"Attendance for course {course_id} on {schedule_date} already exists"
            ) from e
        db.refresh(db_obj)
        logger.info(f"Created attendance record {db_obj.id} for course {course_id} on {schedule_date}")
        return db_obj

    def create_explicit(
        self, db: Session, *, course_id: str, schedule_date: date
    ) -> AttendanceRecord:
        """Explicit creation request: unlike ``ensure_record`` an existing record is an error."""
        if self.get_by_course_and_date(db, course_id=course_id, schedule_date=schedule_date):
            raise InvalidStateError(
                f"Attendance for course {course_id} on {schedule_date} already exists"
            )
        try:
            return self._insert_pending(db, course_id=course_id, schedule_date=schedule_date)
        except ConflictRetryableError as e:
            raise InvalidStateError(e.message) from e

    def check_in(
        self, db: Session, *, record: AttendanceRecord, notes: Optional[str] = None
    ) -> AttendanceRecord:
        """pending -> attend, stamping the check-in time."""
        self._require_pending(record, target=AttendanceStatus.ATTEND)
        record.status = AttendanceStatus.ATTEND
        record.check_in_time = datetime.now(timezone.utc)
        if notes is not None:
            record.notes = notes
        return self._save(db, record)

    def take_leave(
        self, db: Session, *, record: AttendanceRecord, notes: Optional[str] = None
    ) -> AttendanceRecord:
        """pending -> absent, keeping the reason in ``notes``."""
        self._require_pending(record, target=AttendanceStatus.ABSENT)
        record.status = AttendanceStatus.ABSENT
        record.notes = notes
        return self._save(db, record)

    def transition(
        self,
        db: Session,
        *,
        record: AttendanceRecord,
        to_status: str,
        notes: Optional[str] = None,
    ) -> AttendanceRecord:
        to_status = getattr(to_status, "value", to_status)
        if to_status == AttendanceStatus.ATTEND:
            return self.check_in(db, record=record, notes=notes)
        if to_status == AttendanceStatus.ABSENT:
            return self.take_leave(db, record=record, notes=notes)
        raise InvalidTransitionError(
            current_status=record.status,
            required_status=AttendanceStatus.PENDING,
            target_status=str(to_status),
        )

    def mark_reminder_sent(self, db: Session, *, record: AttendanceRecord) -> AttendanceRecord:
        """
        Compare-and-set the reminder flag from false to true.

        Raises ``ReminderAlreadySentError`` when another writer got there first.
        """
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == record.id,
                self.model.reminder_sent.is_(False),
            )
            .values(reminder_sent=True, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            db.refresh(record)
            raise ReminderAlreadySentError(record.id)
        db.refresh(record)
        return record

    def soft_delete(self, db: Session, *, record: AttendanceRecord) -> AttendanceRecord:
        """Remove a record; refused while live consumption rows still point at it."""
        linked = (
            db.query(SessionConsumption)
            .filter(
                SessionConsumption.attendance_id == record.id,
                SessionConsumption.deleted_at.is_(None),
            )
            .count()
        )
        if linked:
            raise InvalidStateError(
                f"Attendance {record.id} has {linked} consumption record(s); delete them first"
            )
        record.deleted_at = datetime.now(timezone.utc)
        return self._save(db, record)

    @staticmethod
    def _require_pending(record: AttendanceRecord, *, target: str) -> None:
        if record.status != AttendanceStatus.PENDING:
            raise InvalidTransitionError(
                current_status=record.status,
                required_status=AttendanceStatus.PENDING,
                target_status=target,
            )

    @staticmethod
    def _save(db: Session, record: AttendanceRecord) -> AttendanceRecord:
        db.add(record)
        db.commit()
        db.refresh(record)
        return record


# Singleton instance
attendance = CRUDAttendance()

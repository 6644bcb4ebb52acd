# lesson_ledger/services/session_ledger.py
"""
Session ledger: total, consumed and remaining sessions of a course.

Nothing here is cached. Every balance is a fresh aggregation over the live
consumption rows, so deleting a consumption immediately gives the sessions
back and the course row is never written by the ledger.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from lesson_ledger.constants.attendance import AttendanceStatus, SessionType
from lesson_ledger.core.exceptions import (
    AttendanceNotAttendedError,
    InsufficientBalanceError,
    InvalidConsumptionError,
)
from lesson_ledger.crud.crud_consumption import consumption as crud_consumption
from lesson_ledger.models.attendance_record import AttendanceRecord
from lesson_ledger.models.course import Course
from lesson_ledger.models.session_consumption import SessionConsumption
from lesson_ledger.schemas.consumption import SessionSummary

logger = logging.getLogger(__name__)


def total_sessions(course: Course) -> int:
    """Paid plus bonus allotment."""
    return (course.regular_sessions or 0) + (course.bonus_sessions or 0)


def consumed_sessions(db: Session, course: Course) -> int:
    """Sum of live consumption rows; 0 for a course that never consumed anything."""
    return crud_consumption.sum_for_course(db, course_id=course.id)


def remaining_sessions(db: Session, course: Course) -> int:
    """Never negative, even if the log somehow exceeds the allotment."""
    return max(0, total_sessions(course) - consumed_sessions(db, course))


def attendance_rate(db: Session, course: Course) -> int:
    """Percentage of decided records (attend or absent) that were attended."""
    decided = (
        db.query(AttendanceRecord.status)
        .filter(
            AttendanceRecord.course_id == course.id,
            AttendanceRecord.deleted_at.is_(None),
            AttendanceRecord.status.in_(AttendanceStatus.terminal_values()),
        )
        .all()
    )
    if not decided:
        return 0
    attended = sum(1 for (status,) in decided if status == AttendanceStatus.ATTEND)
    return int(attended * 100 / len(decided))


def course_session_summary(db: Session, course: Course) -> SessionSummary:
    total = total_sessions(course)
    consumed = consumed_sessions(db, course)
    return SessionSummary(
        total=total,
        consumed=consumed,
        remaining=max(0, total - consumed),
        attendance_rate=attendance_rate(db, course),
    )


def record_consumption(
    db: Session,
    *,
    attendance: AttendanceRecord,
    sessions_consumed: int,
    session_type: str = SessionType.REGULAR,
    description: Optional[str] = None,
) -> SessionConsumption:
    """
    Append one consumption row for an attended lesson.

    Raises:
        InvalidConsumptionError: non-positive count or unknown session type
        AttendanceNotAttendedError: the record is not in state ``attend``
        InsufficientBalanceError: more sessions requested than remain; nothing is written
    """
    session_type = getattr(session_type, "value", session_type)
    if sessions_consumed < 1:
        raise InvalidConsumptionError(
            "sessions_consumed must be at least 1", field="sessions_consumed"
        )
    if not SessionType.is_valid(session_type):
        raise InvalidConsumptionError(
            f"Unknown session type '{session_type}'", field="session_type"
        )

    if attendance.status != AttendanceStatus.ATTEND:
        raise AttendanceNotAttendedError(
            attendance_id=attendance.id,
            current_status=attendance.status,
            required_status=AttendanceStatus.ATTEND,
        )

    # FOR UPDATE serializes consumers on PostgreSQL; the conditional insert
    # below is what holds the balance on SQLite, which ignores the row lock.
    course = (
        db.query(Course)
        .filter(Course.id == attendance.course_id)
        .with_for_update()
        .one()
    )
    remaining = remaining_sessions(db, course)
    if sessions_consumed <= remaining:
        row = crud_consumption.append_within_balance(
            db,
            course_id=course.id,
            total=total_sessions(course),
            attendance_id=attendance.id,
            sessions_consumed=sessions_consumed,
            session_type=session_type,
            description=description,
        )
        if row is not None:
            logger.info(
                f"Consumed {sessions_consumed} {session_type} session(s) from course {course.id} "
                f"(remaining before: {remaining})"
            )
            return row
        # Another consumption committed between the read and the insert
        remaining = remaining_sessions(db, course)

    db.rollback()
    logger.info(
        f"Consumption refused for course {course.id}: "
        f"requested={sessions_consumed} remaining={remaining}"
    )
    raise InsufficientBalanceError(requested=sessions_consumed, remaining=remaining)


def delete_consumption(
    db: Session, *, consumption_id: str, user_id: Optional[str] = None
) -> SessionConsumption:
    """Soft-delete a consumption row; ``NotFoundError`` if absent or already removed."""
    row = crud_consumption.get_live(db, consumption_id=consumption_id, user_id=user_id)
    return crud_consumption.soft_delete(db, consumption=row)


def list_consumptions(db: Session, course: Course) -> List[SessionConsumption]:
    return crud_consumption.get_multi_by_course(db, course_id=course.id)

# lesson_ledger/crud/crud_consumption.py
"""
CRUD operations for the session consumption log.

The log is append-only: rows are inserted and, when removed, soft-deleted.
Balance rules live in services/session_ledger.py; this module only stores
and aggregates.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Integer, String, func, insert, literal, select
from sqlalchemy.orm import Session, joinedload

from lesson_ledger.core.exceptions import NotFoundError
from lesson_ledger.models.course import Course
from lesson_ledger.models.session_consumption import SessionConsumption, new_consumption_id

logger = logging.getLogger(__name__)


class CRUDConsumption:
    """CRUD operations for session consumption rows."""

    model = SessionConsumption

    def append_within_balance(
        self,
        db: Session,
        *,
        course_id: str,
        total: int,
        attendance_id: Optional[str],
        sessions_consumed: int,
        session_type: str,
        description: Optional[str] = None,
    ) -> Optional[SessionConsumption]:
        """
        Insert a row only if the live log plus this row stays within ``total``.

        The balance check and the insert are one ``INSERT ... SELECT ... WHERE``
        statement, so two writers can never both pass the check against the same
        balance. Returns ``None`` (and writes nothing) when the balance is short.
        """
        consumption_id = new_consumption_id()
        consumed = (
            select(func.coalesce(func.sum(self.model.sessions_consumed), 0))
            .where(self.model.course_id == course_id, self.model.deleted_at.is_(None))
            .correlate(None)
            .scalar_subquery()
        )
        source = select(
            literal(consumption_id, String),
            literal(course_id, String),
            literal(attendance_id, String),
            literal(sessions_consumed, Integer),
            literal(session_type, String),
            literal(description, String),
        ).where(consumed + sessions_consumed <= total)
        stmt = insert(self.model.__table__).from_select(
            ["id", "course_id", "attendance_id", "sessions_consumed", "session_type", "description"],
            source,
        )
        try:
            result = db.execute(stmt)
            if result.rowcount != 1:
                db.rollback()
                return None
            db.commit()
        except Exception:
            db.rollback()
            raise
        return db.get(self.model, consumption_id)

    def get_live(
        self, db: Session, *, consumption_id: str, user_id: Optional[str] = None
    ) -> SessionConsumption:
        """Fetch a non-deleted row, optionally scoped to the course owner."""
        query = db.query(self.model).filter(
            self.model.id == consumption_id,
            self.model.deleted_at.is_(None),
        )
        if user_id is not None:
            query = query.join(Course, Course.id == self.model.course_id).filter(
                Course.user_id == user_id
            )
        consumption = query.first()
        if not consumption:
            raise NotFoundError("Consumption record", consumption_id)
        return consumption

    def sum_for_course(self, db: Session, *, course_id: str) -> int:
        total = (
            db.query(func.coalesce(func.sum(self.model.sessions_consumed), 0))
            .filter(self.model.course_id == course_id, self.model.deleted_at.is_(None))
            .scalar()
        )
        return int(total or 0)

    def get_multi_by_course(self, db: Session, *, course_id: str) -> List[SessionConsumption]:
        """Live rows for a course, newest first, with their attendance loaded."""
        return (
            db.query(self.model)
            .filter(self.model.course_id == course_id, self.model.deleted_at.is_(None))
            .options(joinedload(self.model.attendance))
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .all()
        )

    def soft_delete(self, db: Session, *, consumption: SessionConsumption) -> SessionConsumption:
        consumption.deleted_at = datetime.now(timezone.utc)
        db.add(consumption)
        db.commit()
        db.refresh(consumption)
        logger.info(
            f"Soft-deleted consumption {consumption.id} "
            f"({consumption.sessions_consumed} session(s) returned to course {consumption.course_id})"
        )
        return consumption


# Singleton instance
consumption = CRUDConsumption()

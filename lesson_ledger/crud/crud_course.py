# lesson_ledger/crud/crud_course.py
"""
CRUD operations for courses and their weekly schedules.

A course owns its schedule set outright: schedules are only ever written
together with their course, and replacing the set is a single transaction.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .base import CRUDBase
from lesson_ledger.core.exceptions import NotFoundError
from lesson_ledger.models.course import Course
from lesson_ledger.models.course_schedule import CourseSchedule
from lesson_ledger.schemas.course import CourseCreate, CourseUpdate, CourseScheduleCreate

logger = logging.getLogger(__name__)


def active_schedules(course: Course, weekday: Optional[int] = None) -> List[CourseSchedule]:
    """Active schedules of a course in evaluation order (start time, then id)."""
    schedules = [
        s for s in course.schedules
        if s.is_active and (weekday is None or s.weekday == weekday)
    ]
    return sorted(schedules, key=lambda s: (s.start_time, s.id))


class CRUDCourse(CRUDBase[Course, CourseCreate, CourseUpdate]):
    """CRUD operations for courses."""

    def create_with_schedules(
        self, db: Session, *, obj_in: CourseCreate, user_id: str
    ) -> Course:
        obj_in_data = obj_in.model_dump(exclude={"schedules"})
        db_obj = self.model(**obj_in_data, user_id=user_id)
        db_obj.schedules = [
            CourseSchedule(**schedule.model_dump()) for schedule in obj_in.schedules
        ]
        try:
            db.add(db_obj)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Failed to create course for user {user_id}", exc_info=True)
            raise
        db.refresh(db_obj)
        logger.info(
            f"Created course {db_obj.id} for user {user_id} "
            f"with {len(db_obj.schedules)} schedule(s)"
        )
        return db_obj

    def get_for_user(self, db: Session, *, course_id: str, user_id: str) -> Course:
        """Fetch a live course owned by the user or raise ``NotFoundError``."""
        course = (
            db.query(self.model)
            .filter(
                self.model.id == course_id,
                self.model.user_id == user_id,
                self.model.deleted_at.is_(None),
            )
            .first()
        )
        if not course:
            raise NotFoundError("Course", course_id)
        return course

    def get_multi_by_user(
        self,
        db: Session,
        *,
        user_id: str,
        is_active: Optional[bool] = None,
        category: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Course]:
        query = (
            db.query(self.model)
            .filter(self.model.user_id == user_id, self.model.deleted_at.is_(None))
            .options(selectinload(self.model.schedules))
        )
        if is_active is not None:
            query = query.filter(self.model.is_active == is_active)
        if category:
            query = query.filter(self.model.category == category)
        return (
            query.order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def update(self, db: Session, *, db_obj: Course, obj_in: CourseUpdate) -> Course:
        """
        Update course fields and, when ``schedules`` is given, swap the whole
        schedule set. Both happen in one commit.
        """
        update_data = obj_in.model_dump(exclude_unset=True, exclude={"schedules"})
        try:
            super().update(db, db_obj=db_obj, obj_in=update_data, commit=False)
            if obj_in.schedules is not None:
                self._swap_schedules(db_obj, obj_in.schedules)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Failed to update course {db_obj.id}", exc_info=True)
            raise
        db.refresh(db_obj)
        return db_obj

    def replace_schedules(
        self, db: Session, *, course: Course, schedules: List[CourseScheduleCreate]
    ) -> Course:
        """
        Replace every schedule of the course atomically.

        The old rows are deleted and the new ones inserted inside one
        transaction; if anything fails the prior set is restored by rollback,
        so readers only ever see the old set or the new one.
        """
        previous = len(course.schedules)
        try:
            self._swap_schedules(course, schedules)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(
                f"Schedule replacement for course {course.id} rolled back",
                exc_info=True,
            )
            raise
        db.refresh(course)
        logger.info(
            f"Replaced schedules of course {course.id}: {previous} -> {len(course.schedules)}"
        )
        return course

    @staticmethod
    def _swap_schedules(course: Course, schedules: List[CourseScheduleCreate]) -> None:
        # delete-orphan cascade removes the old rows at flush time
        course.schedules = [CourseSchedule(**s.model_dump()) for s in schedules]

    def soft_delete(self, db: Session, *, course_id: str, user_id: str) -> Course:
        course = self.get_for_user(db, course_id=course_id, user_id=user_id)
        course.deleted_at = datetime.now(timezone.utc)
        course.is_active = False
        db.add(course)
        db.commit()
        db.refresh(course)
        logger.info(f"Soft-deleted course {course_id}")
        return course

    def get_active_with_schedules(
        self,
        db: Session,
        *,
        user_id: Optional[str] = None,
        weekday: Optional[int] = None,
    ) -> List[Course]:
        """
        Active, non-deleted courses with their schedules eagerly loaded.

        With ``weekday`` only courses having an active schedule on that day are
        returned.
        """
        query = (
            db.query(self.model)
            .filter(self.model.is_active.is_(True), self.model.deleted_at.is_(None))
            .options(selectinload(self.model.schedules))
        )
        if user_id is not None:
            query = query.filter(self.model.user_id == user_id)
        if weekday is not None:
            query = query.filter(
                self.model.schedules.any(
                    (CourseSchedule.weekday == weekday) & CourseSchedule.is_active.is_(True)
                )
            )
        return query.order_by(self.model.created_at.asc(), self.model.id.asc()).all()


# Singleton instance
course = CRUDCourse(Course)

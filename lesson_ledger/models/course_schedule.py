# lesson_ledger/models/course_schedule.py
import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, expression

from lesson_ledger.db.base_class import Base


class CourseSchedule(Base):
    """
    Weekly recurrence slot of a course.

    Values are validated by ``CourseScheduleCreate`` before a row is built;
    the check constraints only back that up at the storage level.
    """

    __tablename__ = "course_schedules"

    id = Column(
        String, primary_key=True, default=lambda: f"csch_{uuid.uuid4().hex[:12]}"
    )
    course_id = Column(
        String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    weekday = Column(Integer, nullable=False)  # 1 = Monday ... 7 = Sunday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    is_active = Column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )
    location = Column(String(100), nullable=True)
    instructor = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    course = relationship("Course", back_populates="schedules")

    __table_args__ = (
        CheckConstraint("weekday BETWEEN 1 AND 7", name="ck_course_schedules_weekday"),
        CheckConstraint("start_time < end_time", name="ck_course_schedules_time_range"),
    )

    def __repr__(self) -> str:
        return (
            f"<CourseSchedule {self.id} weekday={self.weekday} "
            f"{self.start_time}-{self.end_time}>"
        )

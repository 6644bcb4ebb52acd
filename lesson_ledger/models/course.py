# lesson_ledger/models/course.py
"""
Course model: a block of prepaid lesson sessions bought by one user.

The session balance is never cached on this row; it is derived from the
consumption log on every read (see services/session_ledger.py).
"""
import uuid
from sqlalchemy import (
    Column,
    String,
    Integer,
    Numeric,
    Boolean,
    DateTime,
    Text,
    JSON,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, expression

from lesson_ledger.db.base_class import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(
        String, primary_key=True, default=lambda: f"crs_{uuid.uuid4().hex[:12]}"
    )
    user_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)

    # Paid and free allotments
    regular_sessions = Column(Integer, nullable=False, default=0)
    bonus_sessions = Column(Integer, nullable=False, default=0)

    # Paths of uploaded contract documents; storage itself lives elsewhere
    contract_images = Column(JSON, nullable=False, default=list)

    is_active = Column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )
    category = Column(String(50), nullable=False, default="general")
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    schedules = relationship(
        "CourseSchedule",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="CourseSchedule.start_time",
    )
    attendance_records = relationship(
        "AttendanceRecord",
        back_populates="course",
        order_by="AttendanceRecord.schedule_date.desc()",
    )
    consumptions = relationship("SessionConsumption", back_populates="course")

    __table_args__ = (
        CheckConstraint("regular_sessions >= 0", name="ck_courses_regular_non_negative"),
        CheckConstraint("bonus_sessions >= 0", name="ck_courses_bonus_non_negative"),
        Index("ix_courses_user_active", "user_id", "is_active"),
    )

    @property
    def total_sessions(self) -> int:
        return (self.regular_sessions or 0) + (self.bonus_sessions or 0)

    def __repr__(self) -> str:
        return f"<Course {self.id} name={self.name!r} user={self.user_id}>"

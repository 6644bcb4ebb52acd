# lesson_ledger/models/session_consumption.py
"""
Append-only log of sessions consumed from a course.

Rows are never edited; removing one sets ``deleted_at`` and the ledger simply
stops counting it.
"""
import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from lesson_ledger.db.base_class import Base
from lesson_ledger.constants.attendance import SessionType


def new_consumption_id() -> str:
    return f"cons_{uuid.uuid4().hex[:12]}"


class SessionConsumption(Base):
    __tablename__ = "session_consumptions"

    id = Column(String, primary_key=True, default=new_consumption_id)
    course_id = Column(
        String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attendance_id = Column(
        String, ForeignKey("attendance_records.id"), nullable=True, index=True
    )
    sessions_consumed = Column(Integer, nullable=False, default=1)
    session_type = Column(
        String(20),
        nullable=False,
        default=SessionType.REGULAR,
        server_default=text(f"'{SessionType.REGULAR}'"),
    )
    description = Column(String(200), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    course = relationship("Course", back_populates="consumptions")
    attendance = relationship("AttendanceRecord", back_populates="consumptions")

    __table_args__ = (
        CheckConstraint("sessions_consumed >= 1", name="ck_consumptions_positive"),
        Index("idx_consumptions_course_live", "course_id", "deleted_at"),
    )

    @property
    def session_type_label(self) -> str:
        return SessionType.label(self.session_type)

    def __repr__(self) -> str:
        return (
            f"<SessionConsumption {self.id} course={self.course_id} "
            f"sessions={self.sessions_consumed} type={self.session_type}>"
        )

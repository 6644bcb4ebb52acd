# lesson_ledger/models/attendance_record.py
"""
Attendance record model: one row per course per calendar date.

Rows are created explicitly by the owner or implicitly by the reminder
scheduler the first time it sees an upcoming occurrence.
"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Date,
    DateTime,
    Boolean,
    Text,
    ForeignKey,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, expression

from lesson_ledger.db.base_class import Base
from lesson_ledger.constants.attendance import AttendanceStatus


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(
        String, primary_key=True, default=lambda: f"att_{uuid.uuid4().hex[:12]}"
    )
    course_id = Column(
        String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    schedule_date = Column(Date, nullable=False, index=True)

    # pending -> attend | absent
    status = Column(
        String(20),
        nullable=False,
        default=AttendanceStatus.PENDING,
        server_default=text(f"'{AttendanceStatus.PENDING}'"),
    )
    check_in_time = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    # Monotonic: only ever flipped from false to true
    reminder_sent = Column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    course = relationship("Course", back_populates="attendance_records")
    consumptions = relationship("SessionConsumption", back_populates="attendance")

    __table_args__ = (
        # At most one live record per (course, date)
        Index(
            "uq_attendance_course_date_live",
            "course_id",
            "schedule_date",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_attendance_pending_reminders", "reminder_sent", "schedule_date"),
    )

    @property
    def status_label(self) -> str:
        return AttendanceStatus.label(self.status)

    def __repr__(self) -> str:
        return (
            f"<AttendanceRecord {self.id} course={self.course_id} "
            f"date={self.schedule_date} status={self.status}>"
        )

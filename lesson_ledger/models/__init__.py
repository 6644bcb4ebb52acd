# lesson_ledger/models/__init__.py
# Import all models to ensure SQLAlchemy can resolve relationships

from lesson_ledger.db.base_class import Base
from lesson_ledger.models.course import Course
from lesson_ledger.models.course_schedule import CourseSchedule
from lesson_ledger.models.attendance_record import AttendanceRecord
from lesson_ledger.models.session_consumption import SessionConsumption
from lesson_ledger.models.notification_channel import NotificationChannel

# lesson_ledger/crud/__init__.py

from .crud_attendance import attendance
from .crud_consumption import consumption
from .crud_course import course
from .crud_notification_channel import notification_channel

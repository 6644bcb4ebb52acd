# lesson_ledger/constants/attendance.py
"""
Constants for stored attendance status and session type values.

Provides type-safe constants to replace hardcoded strings throughout the codebase.
"""


class AttendanceStatus:
    """Attendance record status values."""
    PENDING = "pending"
    ATTEND = "attend"
    ABSENT = "absent"

    LABELS = {
        PENDING: "Upcoming",
        ATTEND: "Attended",
        ABSENT: "On leave",
    }

    @classmethod
    def all_values(cls) -> list[str]:
        """Return all valid status values."""
        return [cls.PENDING, cls.ATTEND, cls.ABSENT]

    @classmethod
    def terminal_values(cls) -> list[str]:
        """Statuses that end the lifecycle of a record."""
        return [cls.ATTEND, cls.ABSENT]

    @classmethod
    def is_valid(cls, status: str) -> bool:
        """Check if a status value is valid."""
        return status in cls.all_values()

    @classmethod
    def label(cls, status: str) -> str:
        return cls.LABELS.get(status, status)


class SessionType:
    """Kinds of prepaid session credit."""
    REGULAR = "regular"
    BONUS = "bonus"

    LABELS = {
        REGULAR: "regular session",
        BONUS: "bonus session",
    }

    @classmethod
    def all_values(cls) -> list[str]:
        return [cls.REGULAR, cls.BONUS]

    @classmethod
    def is_valid(cls, session_type: str) -> bool:
        return session_type in cls.all_values()

    @classmethod
    def label(cls, session_type: str) -> str:
        return cls.LABELS.get(session_type, session_type)

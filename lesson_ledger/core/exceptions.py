"""
Error taxonomy for the lesson ledger.

Every error carries a stable ``code`` and a human readable ``message`` so the
calling layer can translate it without re-querying the database. Request
validation problems are reported by pydantic (``pydantic.ValidationError``)
when the input schemas are built, before anything reaches these classes.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "ledger_error"

    def __init__(self, message: str, code: Optional[str] = None):
        if code:
            self.code = code
        self.message = message
        super().__init__(message)


class NotFoundError(LedgerError):
    """Referenced course, schedule, attendance or consumption is absent or not owned."""

    code = "not_found"

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        self.resource = resource
        self.resource_id = resource_id
        if resource_id:
            message = f"{resource} {resource_id} not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)


class InvalidStateError(LedgerError):
    """The target object is not in a state that allows the operation."""

    code = "invalid_state"


class InvalidTransitionError(InvalidStateError):
    """An attendance record cannot move from its current status to the target."""

    code = "invalid_transition"

    def __init__(self, current_status: str, required_status: str, target_status: str):
        self.current_status = current_status
        self.required_status = required_status
        self.target_status = target_status
        super().__init__(
            f"Cannot change attendance from '{current_status}' to '{target_status}': "
            f"record must be '{required_status}'"
        )


class ReminderAlreadySentError(InvalidStateError):
    """The reminder flag of an attendance record was already set."""

    code = "reminder_already_sent"

    def __init__(self, attendance_id: str):
        self.attendance_id = attendance_id
        super().__init__(f"Reminder already sent for attendance {attendance_id}")


class InsufficientBalanceError(LedgerError):
    """Consumption would exceed the remaining session balance."""

    code = "insufficient_balance"

    def __init__(self, requested: int, remaining: int):
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Cannot consume {requested} session(s): only {remaining} remaining"
        )


class ConflictRetryableError(LedgerError):
    """Lost a uniqueness race; the caller re-reads the winning row."""

    code = "conflict_retryable"


class DispatchFailureError(LedgerError):
    """Notification transport failed for every channel of a user."""

    code = "dispatch_failure"

    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Notification to user {user_id} failed: {reason}")


class AttendanceNotAttendedError(InvalidStateError):
    """Sessions can only be consumed against an attendance record marked attend."""

    code = "attendance_not_attended"

    def __init__(self, attendance_id: str, current_status: str, required_status: str):
        self.attendance_id = attendance_id
        self.current_status = current_status
        self.required_status = required_status
        super().__init__(
            f"Attendance {attendance_id} is '{current_status}'; only "
            f"'{required_status}' records can consume sessions"
        )


class InvalidConsumptionError(LedgerError):
    """A consumption request with a non-positive count or an unknown session type."""

    code = "invalid_consumption"

    def __init__(self, message: str, field: str):
        self.field = field
        super().__init__(message)

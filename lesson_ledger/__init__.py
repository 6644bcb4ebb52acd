"""Prepaid lesson sessions, attendance and course reminders."""

__version__ = "0.1.0"

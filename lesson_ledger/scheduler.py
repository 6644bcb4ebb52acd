# lesson_ledger/scheduler.py
"""
Background task scheduler for course reminders.

Uses APScheduler to run two jobs over the same reminder pass:
- A periodic tick that evaluates upcoming occurrences
- A daily backstop in the evening, in case ticks were missed
"""

import logging
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from lesson_ledger.background_tasks import reminder_tasks
from lesson_ledger.background_tasks.reminder_tasks import CourseReminderRunner
from lesson_ledger.core.config import settings
from lesson_ledger.schemas.reminder import ReminderPassResult
from lesson_ledger.utils.time_utils import local_zone

logger = logging.getLogger(__name__)

TICK_JOB_ID = "course_reminder_tick"
BACKSTOP_JOB_ID = "course_reminder_backstop"

# Global scheduler instance
scheduler = None


def _on_job_error(event):
    """Log scheduler job errors with full context."""
    job_id = event.job_id
    exc = event.exception
    tb = event.traceback
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if tb:
        logger.error("Traceback for job %s:\n%s", job_id, tb)


def _on_job_missed(event):
    """Log when a scheduled job misses its execution window."""
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler(runner: Optional[CourseReminderRunner] = None):
    """
    Initialize the background scheduler with the reminder jobs.

    This is called once when the process starts up. Calling it again while
    a scheduler is running returns the existing instance.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    if runner is not None:
        reminder_tasks.set_runner(runner)
    reminder_tasks.get_runner().resume()

    zone = local_zone()
    scheduler = BackgroundScheduler(
        timezone=zone,
        job_defaults={
            'coalesce': True,  # Combine missed executions
            'max_instances': 1,  # Only one instance of each job at a time
            'misfire_grace_time': 60
        }
    )

    # Job 1: Evaluate upcoming occurrences and send reminders that are due
    scheduler.add_job(
        func=reminder_tasks.check_course_reminders,
        trigger=IntervalTrigger(minutes=settings.REMINDER_TICK_MINUTES, timezone=zone),
        id=TICK_JOB_ID,
        name='Check Upcoming Courses for Reminders',
        replace_existing=True
    )
    logger.info(
        f"Scheduled job: {TICK_JOB_ID} (every {settings.REMINDER_TICK_MINUTES} minutes)"
    )

    # Job 2: Evening backstop, same pass
    scheduler.add_job(
        func=reminder_tasks.backstop_course_reminders,
        trigger=CronTrigger(
            hour=settings.REMINDER_BACKSTOP_HOUR,
            minute=settings.REMINDER_BACKSTOP_MINUTE,
            timezone=zone,
        ),
        id=BACKSTOP_JOB_ID,
        name='Daily Course Reminder Backstop',
        replace_existing=True
    )
    logger.info(
        f"Scheduled job: {BACKSTOP_JOB_ID} (daily at "
        f"{settings.REMINDER_BACKSTOP_HOUR:02d}:{settings.REMINDER_BACKSTOP_MINUTE:02d})"
    )

    # Listen for job errors and misfires so they don't fail silently
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    scheduler.start()
    logger.info("Background scheduler started successfully")

    return scheduler


def shutdown_scheduler(wait: bool = True):
    """
    Gracefully shutdown the scheduler.

    A pass that is already running stops after its current course; with
    ``wait`` the call blocks until it has returned.
    """
    global scheduler

    if scheduler is not None:
        reminder_tasks.get_runner().stop()
        scheduler.shutdown(wait=wait)
        logger.info("Background scheduler shutdown complete")
        scheduler = None


# Aliases matching the operations facade
start_scheduler = init_scheduler
stop_scheduler = shutdown_scheduler


def get_scheduler():
    """
    Get the global scheduler instance.

    Returns:
        BackgroundScheduler instance or None if not initialized
    """
    return scheduler


def trigger_reminder_check() -> ReminderPassResult:
    """Run one reminder pass now, in the calling thread."""
    return reminder_tasks.get_runner().run_pass(trigger="manual")


def get_scheduler_status():
    """
    Get the current status of all scheduled jobs.

    Returns:
        Dict with the scheduler state and next run time of each job
    """
    global scheduler

    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs
    }

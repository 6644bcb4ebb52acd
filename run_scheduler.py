#!/usr/bin/env python3
"""
Course Reminder Scheduler

Creates the tables if needed, starts the reminder jobs (periodic tick plus
the evening backstop) and keeps the process alive until interrupted.
"""
import logging
import time

from lesson_ledger.core.config import settings
from lesson_ledger.db.session import init_db
from lesson_ledger.scheduler import get_scheduler_status, init_scheduler, shutdown_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def run_scheduler():
    logger.info(f"Starting course reminder scheduler (env={settings.ENV}, tz={settings.LOCAL_TIMEZONE})")
    init_db()
    init_scheduler()
    for job in get_scheduler_status()["jobs"]:
        logger.info(f"Job {job['id']} next run at {job['next_run_time']}")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down course reminder scheduler...")
    finally:
        shutdown_scheduler(wait=True)


if __name__ == "__main__":
    run_scheduler()

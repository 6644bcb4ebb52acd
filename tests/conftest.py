# tests/conftest.py

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lesson_ledger import scheduler as scheduler_module
from lesson_ledger.background_tasks import reminder_tasks
from lesson_ledger.core.config import settings
from lesson_ledger.db.session import init_db
from tests.utils.notification import RecordingDispatcher


# --- Test Database Setup ---
# One SQLite file per test: several connections (threads, the scheduler
# runner) must see the same data, which an in-memory database cannot offer.
@pytest.fixture(scope="function")
def engine(tmp_path):
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'lesson_ledger_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def dispatcher():
    return RecordingDispatcher()


# --- Global state reset ---
@pytest.fixture(autouse=True)
def utc_courses(monkeypatch):
    """Tests reason in UTC wall-clock times."""
    monkeypatch.setattr(settings, "LOCAL_TIMEZONE", "UTC")


@pytest.fixture(autouse=True)
def reset_globals():
    """Scheduler and default runner are module globals; never leak them between tests."""
    yield
    if scheduler_module.scheduler is not None:
        scheduler_module.shutdown_scheduler(wait=False)
    scheduler_module.scheduler = None
    reminder_tasks.set_runner(None)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from lesson_ledger.core.config import settings
from lesson_ledger.db.base_class import Base


def build_engine(database_url: str):
    """
    Create an engine for the given URL.

    SQLite connections are shared between the scheduler thread and request
    threads, so the same-thread check is disabled and writers wait on the
    database lock instead of failing immediately.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


# The engine is the entry point to the database. It's configured with the
# database URL and handles the connection pooling.
engine = build_engine(settings.DATABASE_URL)

# SessionLocal is a factory for creating new Session objects.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        # Always release the connection, even if the caller raised.
        db.close()


def init_db(bind=None) -> None:
    """Create every table known to the models package."""
    # Importing the package registers all models on Base.metadata.
    import lesson_ledger.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)

"""Database configuration and session management."""

import os
from pathlib import Path
import logging
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

# Base class for all models
Base = declarative_base()

# Database configuration
DATABASE_DIR = Path(__file__).parent.parent.parent / "data"
DATABASE_PATH = DATABASE_DIR / "folio.db"
DATABASE_URL = os.environ.get("FOLIO_DATABASE_URL", f"sqlite:///{DATABASE_PATH}")
SQLITE_BUSY_TIMEOUT_SECONDS = 30

# Create engine; SQLite needs cross-thread access for FastAPI's threadpool
engine = create_engine(
    DATABASE_URL,
    connect_args={
        "check_same_thread": False,
        "timeout": SQLITE_BUSY_TIMEOUT_SECONDS
    } if DATABASE_URL.startswith("sqlite") else {},
    echo=False  # Set to True for SQL debugging
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """
    Get a database session.

    Usage in FastAPI endpoints:
        @app.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            # Use db here
            pass

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """
    Initialize the database.

    Creates all tables if they don't exist.
    Should be called on application startup.
    """
    logger = logging.getLogger(__name__)
    bind = bind or engine

    if bind.url.drivername.startswith("sqlite") and bind.url.database not in (None, "", ":memory:"):
        Path(bind.url.database).parent.mkdir(parents=True, exist_ok=True)

    # Import all models so they're registered with Base
    from folio_engine import models  # noqa: F401

    Base.metadata.create_all(bind=bind)

    # WAL lets export reads proceed while a restore is writing
    if bind.url.drivername.startswith("sqlite") and bind.url.database not in (None, "", ":memory:"):
        with bind.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.execute(text("PRAGMA synchronous=NORMAL"))
            conn.commit()

    logger.info(
        "Database config: pid=%s timeout=%ss url=%s",
        os.getpid(),
        SQLITE_BUSY_TIMEOUT_SECONDS,
        bind.url
    )

"""
Database engine and session setup.
"""
import os
from contextlib import contextmanager
import logging
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from points_tracker.exceptions import DatabaseException
from points_tracker.constants import (
    DEFAULT_DB_DIRECTORY, DEFAULT_DB_DIRECTORY_DEV, DEFAULT_DB_FILE
)

logger = logging.getLogger("points_tracker.database")


def get_database_url() -> str:
    """
    Resolve the database URL from the environment.

    POINTS_TRACKER_DB_URL wins if set. Otherwise the SQLite file lives in
    POINTS_TRACKER_DB_DIR, falling back to the working directory when the
    configured directory can't be created.
    """
    url = os.getenv("POINTS_TRACKER_DB_URL")
    if url:
        return url

    db_dir = os.getenv("POINTS_TRACKER_DB_DIR", DEFAULT_DB_DIRECTORY)
    try:
        Path(db_dir).mkdir(parents=True, exist_ok=True)
    except OSError:
        logger.warning(f"Cannot use {db_dir}, using {DEFAULT_DB_DIRECTORY_DEV}")
        db_dir = DEFAULT_DB_DIRECTORY_DEV

    return f"sqlite:///{Path(db_dir) / DEFAULT_DB_FILE}"


DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
)
SessionLocal = sessionmaker(autocommit=False, autoflush=True, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """Yield a session and close it afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session, operation: str) -> Iterator[Session]:
    """
    Run one mutation as a single unit of work.

    Everything staged inside the block is committed together. On any error
    the session is rolled back, so a task change never survives without its
    recomputed day total. Storage errors are logged and re-raised as
    DatabaseException.

    Usage:
        with transaction(db, "increment task"):
            task.completed_count += 1
            ...
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to {operation}: {e}")
        raise DatabaseException(operation, str(e)) from e
    except Exception:
        db.rollback()
        raise


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables for the mapped models"""
    from points_tracker import models  # noqa: F401  register models with Base

    Base.metadata.create_all(bind=bind or engine)

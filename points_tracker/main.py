"""
Application bootstrap: logging, schema setup and the rollover scheduler.
"""
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from points_tracker.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, DEFAULT_LOG_FILE
)
from points_tracker.database import SessionLocal, init_db
from points_tracker.auto_migrate import auto_migrate
from points_tracker.scheduler import start_scheduler, stop_scheduler
from points_tracker.services.recurrence_service import RecurrenceService

logger = logging.getLogger("points_tracker")


def configure_logging(level: int = logging.INFO) -> Path:
    """
    Log to a file and the console.

    Returns:
        Path of the log file
    """
    log_dir = os.getenv("POINTS_TRACKER_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
    log_file = os.getenv("POINTS_TRACKER_LOG_FILE", DEFAULT_LOG_FILE)

    try:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_path = Path(log_dir) / log_file
        file_handler = logging.FileHandler(log_path)
    except PermissionError:
        # Fallback to local directory if no permissions for /var/log
        log_dir = DEFAULT_LOG_DIRECTORY_DEV
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_path = Path(log_dir) / log_file
        file_handler = logging.FileHandler(log_path)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            file_handler,
            logging.StreamHandler()  # Also log to console
        ]
    )
    return log_path


def init_app(run_scheduler: bool = True) -> None:
    """Create tables, add missing columns and prepare today"""
    init_db()

    # Run automatic schema migrations (add missing columns)
    try:
        auto_migrate()
    except Exception as e:
        logger.error(f"Auto-migration failed: {e}")

    db = SessionLocal()
    try:
        day = RecurrenceService(db).prepare_today()
        logger.info(f"Today is {day.date} with {len(day.tasks)} task(s)")
    finally:
        db.close()

    if run_scheduler:
        start_scheduler()


def run(stop_event: Optional[threading.Event] = None) -> None:
    """Run until interrupted"""
    log_path = configure_logging()
    init_app()
    logger.info(f"Points Tracker started. Logging to: {log_path}")

    stop_event = stop_event or threading.Event()
    try:
        stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down Points Tracker")
        stop_scheduler()


if __name__ == "__main__":
    run()

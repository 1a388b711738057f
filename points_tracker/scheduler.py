"""
Background scheduler for the daily rollover.
Once a minute it checks whether the effective day has been prepared and,
after the configured rollover time, creates it with today's routines.
"""
import logging
from datetime import datetime
from typing import Callable, Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from points_tracker.database import SessionLocal
from points_tracker.constants import DEFAULT_ROLLOVER_TIME
from points_tracker.repositories.day_repository import DayRepository
from points_tracker.repositories.settings_repository import SettingsRepository
from points_tracker.services.date_service import DateService
from points_tracker.services.recurrence_service import RecurrenceService

logger = logging.getLogger("points_tracker.scheduler")


def check_daily_rollover(
    session_factory: Callable[[], Session] = SessionLocal,
    now: Optional[datetime] = None
) -> bool:
    """
    Prepare the effective day if rollover is due.

    Returns:
        True if a new day was prepared
    """
    db: Session = session_factory()
    try:
        settings = SettingsRepository.get(db)

        # Only proceed if auto rollover is enabled
        if not settings.auto_rollover_enabled:
            return False

        date_service = DateService()
        now = now or date_service.now()
        rollover_time = settings.rollover_time or DEFAULT_ROLLOVER_TIME

        if not date_service.is_time_reached(rollover_time, now):
            return False

        today = date_service.get_effective_date(settings, now)
        if DayRepository.get_by_date(db, today):
            return False

        logger.info(f"Executing daily rollover for {today} at {now.strftime('%H:%M')}")
        day = RecurrenceService(db, date_service).prepare_day(today)
        logger.info(f"Rollover successful: {len(day.tasks)} task(s) on {today}")
        return True

    except Exception as e:
        logger.error(f"Error in check_daily_rollover: {e}")
        return False
    finally:
        db.close()


# Create scheduler instance
scheduler = BackgroundScheduler()


def start_scheduler():
    """Start the background scheduler"""
    logger.info("Starting Points Tracker background scheduler")

    # Check for rollover every minute
    # (the function itself checks if it's time to roll over)
    scheduler.add_job(
        check_daily_rollover,
        CronTrigger(minute='*'),  # Every minute
        id='check_daily_rollover',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background scheduler started successfully")


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")

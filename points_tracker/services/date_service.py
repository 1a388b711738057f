"""
Date calculation service.
Handles the clock, effective dates and the day start time logic.
"""
from datetime import datetime, timedelta, date
from typing import Callable, Optional, Union

from points_tracker.models import Settings
from points_tracker.constants import DEFAULT_DAY_START_TIME
from points_tracker.exceptions import InvalidTimeFormatException

Clock = Callable[[], datetime]


class DateService:
    """Service for date-related operations"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock

    def now(self) -> datetime:
        """Current time from the configured clock"""
        if self.clock is None:
            return datetime.now()
        return self.clock()

    def get_effective_date(self, settings: Settings, now: Optional[datetime] = None) -> date:
        """
        Get the effective current date based on day_start_time setting.

        If day_start_enabled is True and current time is before day_start_time,
        returns yesterday's date. Otherwise returns today's date.

        Example: If day_start_time = "04:00" and current time is 01:30,
        the effective date is still yesterday because the user hasn't
        started their "new day" yet.

        Args:
            settings: Settings object containing day_start configuration
            now: Override for the current time

        Returns:
            Effective date (today or yesterday)
        """
        now = now or self.now()
        today = now.date()

        if not settings.day_start_enabled:
            return today

        try:
            day_start_hour, day_start_minute = self.parse_time(
                settings.day_start_time or DEFAULT_DAY_START_TIME
            )
        except InvalidTimeFormatException:
            return today

        # If current time is before day_start_time, we're still in "yesterday"
        current_minutes = now.hour * 60 + now.minute
        start_minutes = day_start_hour * 60 + day_start_minute

        if current_minutes < start_minutes:
            return today - timedelta(days=1)

        return today

    @staticmethod
    def parse_time(time_str: str) -> tuple[int, int]:
        """
        Parse time string into hour and minute.

        Args:
            time_str: Time string in "HH:MM" format

        Returns:
            Tuple of (hour, minute)

        Raises:
            InvalidTimeFormatException: If time string is invalid
        """
        try:
            hour_str, minute_str = time_str.split(":")
            hour = int(hour_str)
            minute = int(minute_str)
        except (ValueError, AttributeError):
            raise InvalidTimeFormatException(str(time_str))

        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise InvalidTimeFormatException(time_str)

        return hour, minute

    @staticmethod
    def start_of_day(value: Union[datetime, date]) -> date:
        """Drop the time component"""
        if isinstance(value, datetime):
            return value.date()
        return value

    @staticmethod
    def previous_day(target_date: date) -> date:
        return target_date - timedelta(days=1)

    def is_time_reached(self, time_str: str, now: Optional[datetime] = None) -> bool:
        """Check if the current time of day is at or after HH:MM"""
        now = now or self.now()
        hour, minute = self.parse_time(time_str)
        return (now.hour, now.minute) >= (hour, minute)

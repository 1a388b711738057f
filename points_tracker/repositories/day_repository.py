"""
Day repository - Data access layer for Day model.
"""
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session

from points_tracker.models import Day


class DayRepository:
    """Repository for Day data access"""

    @staticmethod
    def get_by_id(db: Session, day_id: int) -> Optional[Day]:
        """Get day by ID"""
        return db.query(Day).filter(Day.id == day_id).first()

    @staticmethod
    def get_by_date(db: Session, target_date: date) -> Optional[Day]:
        """Get day for specific date"""
        return db.query(Day).filter(Day.date == target_date).first()

    @staticmethod
    def add(db: Session, day: Day) -> Day:
        """Stage a new day and assign its id"""
        db.add(day)
        db.flush()
        return day

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from points_tracker.database import Base
from points_tracker.constants import (
    POINTS_PRECISION, POINTS_SCALE,
    DEFAULT_DAY_TARGET, DEFAULT_DAY_START_TIME, DEFAULT_ROLLOVER_TIME
)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, default="")

    # Scoring inputs
    points = Column(Numeric(POINTS_PRECISION, POINTS_SCALE), nullable=False, default=0)
    completed_count = Column(Integer, nullable=False, default=0)
    target = Column(Integer, nullable=False, default=1)       # >= 1
    max_count = Column(Integer, nullable=False, default=1)    # >= target
    reward = Column(Numeric(POINTS_PRECISION, POINTS_SCALE), nullable=False, default=0)
    is_routine = Column(Boolean, nullable=False, default=False)

    # Presentation only, no effect on scoring
    is_optional = Column(Boolean, nullable=False, default=False)
    is_critical = Column(Boolean, nullable=False, default=False)

    # Templates have no day and are copied into each day
    is_template = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)  # Soft delete (templates)

    position = Column(Integer, nullable=False, default=0)

    # Weak back-reference: plain id, no FK, template may be gone
    source_template_id = Column(Integer, nullable=True, index=True)

    day_id = Column(Integer, ForeignKey("days.id"), nullable=True, index=True)
    day = relationship("Day", back_populates="tasks")

    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self) -> str:
        return (
            f"<Task id={self.id} title={self.title!r} "
            f"{self.completed_count}/{self.target}/{self.max_count} pos={self.position}>"
        )


class Day(Base):
    __tablename__ = "days"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    target = Column(Integer, nullable=False, default=DEFAULT_DAY_TARGET)  # Goal per task
    points = Column(Numeric(POINTS_PRECISION, POINTS_SCALE), nullable=False, default=0)  # Cached aggregate

    tasks = relationship(
        "Task",
        back_populates="day",
        order_by="Task.position",
        cascade="all, delete-orphan"
    )

    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self) -> str:
        return f"<Day id={self.id} date={self.date} points={self.points}>"


class Settings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)

    # Target assigned to newly created days
    default_day_target = Column(Integer, default=DEFAULT_DAY_TARGET)

    # Day boundary settings
    day_start_enabled = Column(Boolean, default=False)  # Enable custom day start time
    day_start_time = Column(String, default=DEFAULT_DAY_START_TIME)  # Before this, it's still yesterday

    # Daily rollover (materialize today's routines)
    auto_rollover_enabled = Column(Boolean, default=True)
    rollover_time = Column(String, default=DEFAULT_ROLLOVER_TIME)  # HH:MM

    # Seed starter routines into an empty day
    seed_default_tasks = Column(Boolean, default=False)

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

from pydantic import BaseModel, Field, model_validator
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from points_tracker.constants import (
    DEFAULT_TASK_POINTS, DEFAULT_TASK_TARGET, DEFAULT_DAY_TARGET,
    DEFAULT_DAY_START_TIME, DEFAULT_ROLLOVER_TIME, TIME_FORMAT_PATTERN
)


class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    points: Decimal = Field(default=DEFAULT_TASK_POINTS, ge=0)
    target: int = Field(default=DEFAULT_TASK_TARGET, ge=1)
    reward: Decimal = Field(default=Decimal("0"), ge=0)
    is_routine: bool = False
    is_optional: bool = False
    is_critical: bool = False


class TaskCreate(TaskBase):
    """Definition for a new task or template"""
    max_count: Optional[int] = Field(default=None, ge=1)  # None -> target + 2
    is_template: bool = False

    @model_validator(mode="after")
    def check_max_not_below_target(self):
        if self.max_count is not None and self.max_count < self.target:
            raise ValueError("max_count must be >= target")
        return self


class TaskUpdate(BaseModel):
    """
    Partial update. Only fields that were explicitly set are applied
    (model_dump(exclude_unset=True)); everything else stays untouched.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    points: Optional[Decimal] = Field(None, ge=0)
    target: Optional[int] = Field(None, ge=1)
    max_count: Optional[int] = Field(None, ge=1)
    reward: Optional[Decimal] = Field(None, ge=0)
    is_routine: Optional[bool] = None
    is_optional: Optional[bool] = None
    is_critical: Optional[bool] = None

    @model_validator(mode="after")
    def check_max_not_below_target(self):
        if (
            self.target is not None
            and self.max_count is not None
            and self.max_count < self.target
        ):
            raise ValueError("max_count must be >= target")
        return self

    def changes(self) -> dict:
        """Fields present in this changeset"""
        return self.model_dump(exclude_unset=True)


class TaskResponse(TaskBase):
    id: int
    max_count: int
    completed_count: int
    is_template: bool
    is_deleted: bool = False
    position: int
    source_template_id: Optional[int] = None
    day_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DayResponse(BaseModel):
    id: int
    date: date
    target: int = DEFAULT_DAY_TARGET
    points: Decimal = Decimal("0")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaskScore(BaseModel):
    """Per-task scoring breakdown for the detail view"""
    consecutive_days: int = 0
    streak_bonus: Decimal = Decimal("0")
    bonus: Decimal = Decimal("0")
    points: Decimal = Decimal("0")


# Settings schemas
class SettingsBase(BaseModel):
    default_day_target: int = Field(default=DEFAULT_DAY_TARGET, ge=0, le=1000)

    # Day boundary settings
    day_start_enabled: bool = Field(default=False)
    day_start_time: str = Field(default=DEFAULT_DAY_START_TIME, pattern=TIME_FORMAT_PATTERN)

    # Rollover settings
    auto_rollover_enabled: bool = Field(default=True)
    rollover_time: str = Field(default=DEFAULT_ROLLOVER_TIME, pattern=TIME_FORMAT_PATTERN)

    seed_default_tasks: bool = Field(default=False)


class SettingsUpdate(BaseModel):
    default_day_target: Optional[int] = Field(None, ge=0, le=1000)
    day_start_enabled: Optional[bool] = None
    day_start_time: Optional[str] = Field(None, pattern=TIME_FORMAT_PATTERN)
    auto_rollover_enabled: Optional[bool] = None
    rollover_time: Optional[str] = Field(None, pattern=TIME_FORMAT_PATTERN)
    seed_default_tasks: Optional[bool] = None


class SettingsResponse(SettingsBase):
    id: int
    updated_at: Optional[datetime] = None
    effective_date: Optional[date] = None  # Current effective date based on day_start_time

    class Config:
        from_attributes = True

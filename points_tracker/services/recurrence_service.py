"""
Recurrence service.
Materializes templates into per-day task instances and counts streaks.

Templates are copied into a day at most once, keyed by
(day_id, source_template_id). Instances that already exist are never
touched again, so edits made to a day's copy survive later runs.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from points_tracker.database import transaction
from points_tracker.models import Task, Day
from points_tracker.repositories.task_repository import TaskRepository
from points_tracker.repositories.day_repository import DayRepository
from points_tracker.repositories.settings_repository import SettingsRepository
from points_tracker.services.date_service import DateService
from points_tracker.decimal_utils import ZERO, quantize_points
from points_tracker.constants import (
    DEFAULT_DAY_TARGET, DEFAULT_TASK_MAX, DEFAULT_TASKS, MAX_STREAK_LOOKBACK_DAYS
)

logger = logging.getLogger("points_tracker.recurrence")

# Fields copied from a template into each day's instance
TEMPLATE_FIELDS = (
    "title", "points", "target", "max_count", "reward",
    "is_routine", "is_optional", "is_critical",
)


class RecurrenceService:
    """Service for day creation and template materialization"""

    def __init__(self, db: Session, date_service: Optional[DateService] = None):
        self.db = db
        self.task_repo = TaskRepository()
        self.day_repo = DayRepository()
        self.settings_repo = SettingsRepository()
        self.date_service = date_service or DateService()

    def ensure_day_exists(self, target_date: date) -> Day:
        """Get the day for a date, creating it with the default target"""
        day = self.day_repo.get_by_date(self.db, target_date)
        if day:
            return day

        settings = self.settings_repo.get(self.db)
        with transaction(self.db, "create day"):
            day = self._stage_day(target_date, settings.default_day_target)
        return day

    def ensure_tasks_exist(self, day: Day) -> List[Task]:
        """
        Copy every active template that has no instance on the day yet.

        Safe to call repeatedly: the second call creates nothing.

        Returns:
            Newly created instances (empty when the day was up to date)
        """
        with transaction(self.db, "materialize templates"):
            created = self._stage_instances(day)
        return created

    def seed_default_tasks(self, day: Day) -> List[Task]:
        """Add the starter routines to a day that has no tasks"""
        with transaction(self.db, "seed default tasks"):
            created = self._stage_defaults(day)
        return created

    def prepare_day(self, target_date: date) -> Day:
        """
        Make a day ready for use in one commit.

        Creates the day if needed, materializes templates and, when enabled
        in settings, seeds the starter routines into a still-empty day.
        """
        settings = self.settings_repo.get(self.db)

        with transaction(self.db, "prepare day"):
            day = self.day_repo.get_by_date(self.db, target_date)
            if not day:
                day = self._stage_day(target_date, settings.default_day_target)

            created = self._stage_instances(day)
            if settings.seed_default_tasks:
                created += self._stage_defaults(day)

        if created:
            logger.info(f"Prepared {target_date}: {len(created)} task(s) created")
        return day

    def prepare_today(self) -> Day:
        """Prepare the day for the current effective date"""
        settings = self.settings_repo.get(self.db)
        today = self.date_service.get_effective_date(settings)
        return self.prepare_day(today)

    def count_consecutive_days(self, task: Task) -> int:
        """
        Count the streak for a task instance.

        A day counts when an instance of the same template reached its
        target that day. The task's own day counts if the task itself is
        at or over target; earlier days must be unbroken, ending yesterday.

        Standalone instances score 1 at/over target, otherwise 0.
        Templates score 0.
        """
        if task.is_template:
            return 0

        own = 1 if (task.completed_count or 0) >= task.target else 0

        if task.source_template_id is None or task.day is None:
            return own

        day_date = task.day.date
        start = day_date - timedelta(days=MAX_STREAK_LOOKBACK_DAYS)
        met_dates = self.task_repo.get_target_met_dates(
            self.db, task.source_template_id, start, self.date_service.previous_day(day_date)
        )

        streak = own
        current = self.date_service.previous_day(day_date)
        while current in met_dates:
            streak += 1
            current = self.date_service.previous_day(current)

        return streak

    def _stage_day(self, target_date: date, day_target: Optional[int]) -> Day:
        day = Day(
            date=target_date,
            target=DEFAULT_DAY_TARGET if day_target is None else day_target,
            points=ZERO
        )
        self.day_repo.add(self.db, day)
        logger.info(f"Created day {target_date} (target {day.target})")
        return day

    def _stage_instances(self, day: Day) -> List[Task]:
        existing = self.task_repo.get_materialized_template_ids(self.db, day.id)
        created = []
        # Appended after the day's tasks, keeping template order
        next_position = self.task_repo.next_position_for_day(self.db, day.id)

        for template in self.task_repo.get_templates(self.db):
            if template.id in existing:
                continue

            instance = Task(
                **{field: getattr(template, field) for field in TEMPLATE_FIELDS},
                completed_count=0,
                is_template=False,
                is_deleted=False,
                position=next_position + len(created),
                source_template_id=template.id,
                day_id=day.id
            )
            instance.points = quantize_points(instance.points)
            instance.reward = quantize_points(instance.reward)
            self.task_repo.add(self.db, instance)
            created.append(instance)

        if created:
            logger.info(f"Materialized {len(created)} template(s) into day {day.date}")
        else:
            logger.debug(f"Day {day.date} already has all templates")
        return created

    def _stage_defaults(self, day: Day) -> List[Task]:
        if self.task_repo.count_for_day(self.db, day.id) > 0:
            logger.debug(f"Day {day.date} is not empty, skipping default tasks")
            return []

        created = []
        for position, (title, points, target) in enumerate(DEFAULT_TASKS):
            task = Task(
                title=title,
                points=quantize_points(points),
                target=target,
                max_count=DEFAULT_TASK_MAX,
                reward=ZERO,
                completed_count=0,
                is_routine=True,
                position=position,
                day_id=day.id
            )
            self.task_repo.add(self.db, task)
            created.append(task)

        logger.info(f"Seeded {len(created)} default task(s) into day {day.date}")
        return created

"""
Task management service.
Handles task CRUD, completion counting, ordering, templates and keeping each
day's cached points total in step with its tasks.

Every mutation is one transaction: the change and the recomputed day total
are committed together, and PointsChanged / ProgressChanged are published
only after the commit succeeds.
"""
import logging
from datetime import date
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session

from points_tracker.database import transaction
from points_tracker.models import Task, Day
from points_tracker.schemas import TaskCreate, TaskUpdate, TaskScore
from points_tracker.events import EventBus, PointsChanged, ProgressChanged
from points_tracker.exceptions import (
    TaskNotFoundException, DayNotFoundException,
    DuplicateTemplateException, ValidationException
)
from points_tracker.repositories.task_repository import TaskRepository
from points_tracker.repositories.day_repository import DayRepository
from points_tracker.repositories.settings_repository import SettingsRepository
from points_tracker.services.date_service import DateService
from points_tracker.services.scoring_service import ScoringService
from points_tracker.services.recurrence_service import RecurrenceService
from points_tracker.decimal_utils import ZERO, quantize_points, truncate
from points_tracker.constants import DEFAULT_MAX_OFFSET

logger = logging.getLogger("points_tracker.tasks")

# Fields carried over by duplicate() and copy_to_template()
COPY_FIELDS = (
    "title", "points", "target", "max_count", "reward",
    "is_routine", "is_optional", "is_critical",
)


class TaskService:
    """Service for task management"""

    def __init__(
        self,
        db: Session,
        event_bus: Optional[EventBus] = None,
        date_service: Optional[DateService] = None,
        recurrence_service: Optional[RecurrenceService] = None
    ):
        self.db = db
        self.task_repo = TaskRepository()
        self.day_repo = DayRepository()
        self.settings_repo = SettingsRepository()
        self.events = event_bus or EventBus()
        self.date_service = date_service or DateService()
        self.recurrence_service = recurrence_service or RecurrenceService(db, self.date_service)

    # Lookups

    def get_task(self, task_id: int) -> Task:
        task = self.task_repo.get_by_id(self.db, task_id)
        if not task:
            raise TaskNotFoundException(task_id)
        return task

    def get_day(self, day_id: int) -> Day:
        day = self.day_repo.get_by_id(self.db, day_id)
        if not day:
            raise DayNotFoundException(day_id)
        return day

    def fetch_tasks(self, day_id: int) -> List[Task]:
        """Tasks of a day ordered by position"""
        day = self.get_day(day_id)
        return self.task_repo.get_for_day(self.db, day.id)

    def fetch_tasks_for_date(self, target_date: date) -> List[Task]:
        """Tasks for a date; empty if the day was never created"""
        day = self.day_repo.get_by_date(self.db, target_date)
        if not day:
            return []
        return self.task_repo.get_for_day(self.db, day.id)

    def get_templates(self, routines_only: Optional[bool] = None) -> List[Task]:
        """
        Active templates ordered by position.

        Args:
            routines_only: True for routines, False for one-shot tasks, None for all
        """
        return self.task_repo.get_templates(self.db, routines_only=routines_only)

    # Creation

    def create(self, definition: TaskCreate, day_id: Optional[int] = None) -> Task:
        """
        Create a task instance or template.

        Instances are appended to their day (today's effective day when
        day_id is None). Templates belong to no day and are appended after
        the existing templates. max_count defaults to target + 2.
        """
        data = definition.model_dump(exclude={"max_count", "is_template"})
        max_count = definition.max_count
        if max_count is None:
            max_count = definition.target + DEFAULT_MAX_OFFSET

        if definition.is_template:
            with transaction(self.db, "create template"):
                task = Task(
                    **data,
                    max_count=max_count,
                    completed_count=0,
                    is_template=True,
                    position=self.task_repo.count_templates(self.db)
                )
                self._normalize_points(task)
                self.task_repo.add(self.db, task)
            logger.info(f"Created template {task.id} '{task.title}'")
            return task

        day = self._resolve_day(day_id)
        with transaction(self.db, "create task"):
            task = Task(
                **data,
                max_count=max_count,
                completed_count=0,
                is_template=False,
                position=self.task_repo.next_position_for_day(self.db, day.id),
                day_id=day.id
            )
            self._normalize_points(task)
            self.task_repo.add(self.db, task)
            self._stage_day_points(day)

        logger.info(f"Created task {task.id} '{task.title}' on {day.date}")
        self._publish(day)
        return task

    def duplicate(self, task_id: int) -> Task:
        """Copy a task onto the same day with zero completions, appended last"""
        original = self.get_task(task_id)

        with transaction(self.db, "duplicate task"):
            copy = Task(
                **{field: getattr(original, field) for field in COPY_FIELDS},
                completed_count=0,
                is_template=original.is_template,
                source_template_id=original.source_template_id,
                day_id=original.day_id
            )
            if original.is_template:
                copy.position = self.task_repo.count_templates(self.db)
            else:
                copy.position = self.task_repo.next_position_for_day(self.db, original.day_id)
            self.task_repo.add(self.db, copy)

        logger.info(f"Duplicated task {task_id} as {copy.id}")
        return copy

    def copy_to_template(self, task_id: int) -> Task:
        """
        Save a task as a new template.

        Raises:
            DuplicateTemplateException: An active template already has this title
        """
        task = self.get_task(task_id)
        if task.is_template:
            raise ValidationException("task_id", "task is already a template")
        if self.task_repo.get_template_by_title(self.db, task.title):
            raise DuplicateTemplateException(task.title)

        with transaction(self.db, "copy task to template"):
            template = Task(
                **{field: getattr(task, field) for field in COPY_FIELDS},
                completed_count=0,
                is_template=True,
                position=self.task_repo.count_templates(self.db)
            )
            self.task_repo.add(self.db, template)

        logger.info(f"Copied task {task_id} to template {template.id} '{template.title}'")
        return template

    # Completion

    def increment(self, task_id: int) -> Task:
        """Add one completion; no-op at max_count"""
        task = self.get_task(task_id)
        self._check_not_template(task)
        if task.completed_count >= task.max_count:
            logger.debug(f"Task {task_id} already at max ({task.max_count})")
            return task

        with transaction(self.db, "increment task"):
            task.completed_count += 1
            day = self._stage_owner_points(task)

        logger.info(f"Task {task_id} completed {task.completed_count}/{task.target}")
        self._publish(day)
        return task

    def decrement(self, task_id: int) -> Task:
        """Remove one completion; no-op at zero"""
        task = self.get_task(task_id)
        self._check_not_template(task)
        if task.completed_count <= 0:
            logger.debug(f"Task {task_id} already at zero")
            return task

        with transaction(self.db, "decrement task"):
            task.completed_count -= 1
            day = self._stage_owner_points(task)

        logger.info(f"Task {task_id} completed {task.completed_count}/{task.target}")
        self._publish(day)
        return task

    # Editing

    def update(self, task_id: int, task_update: TaskUpdate) -> Task:
        """
        Apply the fields present in a changeset.

        Raises:
            ValidationException: A field is explicitly null, or the result
                would have max_count below target. Nothing is changed.
        """
        task = self.get_task(task_id)
        changes = task_update.changes()

        for field, value in changes.items():
            if value is None:
                raise ValidationException(field, "cannot be null")

        new_target = changes.get("target", task.target)
        new_max = changes.get("max_count", task.max_count)
        if new_max < new_target:
            raise ValidationException("max_count", f"{new_max} is below target {new_target}")

        with transaction(self.db, "update task"):
            for field, value in changes.items():
                setattr(task, field, value)
            self._normalize_points(task)

            if task.completed_count > task.max_count:
                task.completed_count = task.max_count

            day = self._stage_owner_points(task)

        logger.info(f"Updated task {task_id}: {', '.join(sorted(changes)) or 'no changes'}")
        self._publish(day)
        return task

    def delete(self, task_id: int) -> None:
        """
        Delete a task.

        Instances are removed, the rest of the day is renumbered 0..n-1
        and the day recomputed. Templates are soft-deleted so instances
        keep a valid source_template_id.
        """
        task = self.get_task(task_id)

        if task.is_template:
            with transaction(self.db, "delete template"):
                task.is_deleted = True
            logger.info(f"Soft-deleted template {task_id} '{task.title}'")
            return

        day = task.day
        with transaction(self.db, "delete task"):
            self.task_repo.delete(self.db, task)
            if day is not None:
                self._stage_compact_positions(day)
                self._stage_day_points(day)

        logger.info(f"Deleted task {task_id}")
        self._publish(day)

    def reorder(self, day_id: int, from_indices: Sequence[int], to_index: int) -> List[Task]:
        """
        Move tasks within a day.

        The tasks at from_indices (into the current order) are placed, in
        their existing relative order, before the task originally at
        to_index; to_index == len(tasks) moves them to the end. Positions
        are rewritten as 0..n-1.

        Raises:
            ValidationException: An index is out of range
        """
        day = self.get_day(day_id)
        tasks = self.task_repo.get_for_day(self.db, day.id)
        count = len(tasks)

        moving = sorted(set(from_indices))
        for index in moving:
            if not 0 <= index < count:
                raise ValidationException("from_indices", f"{index} is out of range 0..{count - 1}")
        if not 0 <= to_index <= count:
            raise ValidationException("to_index", f"{to_index} is out of range 0..{count}")

        moved = [tasks[i] for i in moving]
        kept = [task for i, task in enumerate(tasks) if i not in moving]
        insert_at = sum(1 for i in range(to_index) if i not in moving)
        ordered = kept[:insert_at] + moved + kept[insert_at:]

        with transaction(self.db, "reorder tasks"):
            for position, task in enumerate(ordered):
                task.position = position

        logger.info(f"Reordered {len(moved)} task(s) on day {day.date}")
        return ordered

    # Day level

    def recompute_day_points(self, day_id: int) -> int:
        """Recalculate and store a day's total; returns the new total"""
        day = self.get_day(day_id)
        with transaction(self.db, "recompute day points"):
            points = self._stage_day_points(day)
        self._publish(day)
        return points

    def calculate_progress(self, day_id: int) -> float:
        """
        Day progress as a fraction.

        Goal is day.target per task. A day with no tasks has 0 progress.
        """
        day = self.get_day(day_id)
        tasks = self.task_repo.get_for_day(self.db, day.id)
        if not tasks:
            return 0.0

        total = ScoringService.compute_aggregate(tasks)
        return ScoringService.compute_progress(total, (day.target or 0) * len(tasks))

    def clear_tasks(self, day_id: int) -> int:
        """Delete every task on a day; returns how many were removed"""
        day = self.get_day(day_id)
        with transaction(self.db, "clear tasks"):
            removed = self.task_repo.delete_for_day(self.db, day.id)
            day.points = ZERO

        logger.info(f"Cleared {removed} task(s) from day {day.date}")
        self._publish(day)
        return removed

    def reset_completions(self, day_id: int) -> None:
        """Set every task on a day back to zero completions"""
        day = self.get_day(day_id)
        with transaction(self.db, "reset completions"):
            for task in self.task_repo.get_for_day(self.db, day.id):
                task.completed_count = 0
            day.points = ZERO

        logger.info(f"Reset completions on day {day.date}")
        self._publish(day)

    def set_day_target(self, day_id: int, target: int) -> Day:
        """Change the per-task goal of a day"""
        if target is None or target < 0:
            raise ValidationException("target", "must be >= 0")

        day = self.get_day(day_id)
        with transaction(self.db, "set day target"):
            day.target = target

        logger.info(f"Day {day.date} target set to {target}")
        self.events.publish(ProgressChanged(day_id=day.id, progress=self.calculate_progress(day.id)))
        return day

    # Scoring detail

    def score_task(self, task_id: int) -> TaskScore:
        """Bonus and points breakdown for one task"""
        task = self.get_task(task_id)
        consecutive_days = self.recurrence_service.count_consecutive_days(task)
        return ScoringService.score(task, consecutive_days)

    # Helpers

    def _resolve_day(self, day_id: Optional[int]) -> Day:
        if day_id is not None:
            return self.get_day(day_id)

        settings = self.settings_repo.get(self.db)
        today = self.date_service.get_effective_date(settings)
        return self.recurrence_service.ensure_day_exists(today)

    def _stage_compact_positions(self, day: Day) -> None:
        for position, task in enumerate(self.task_repo.get_for_day(self.db, day.id)):
            task.position = position

    def _stage_day_points(self, day: Day) -> int:
        self.db.flush()
        points = ScoringService.compute_aggregate(self.task_repo.get_for_day(self.db, day.id))
        day.points = quantize_points(points)
        return points

    def _stage_owner_points(self, task: Task) -> Optional[Day]:
        if task.is_template or task.day is None:
            return None
        self._stage_day_points(task.day)
        return task.day

    def _publish(self, day: Optional[Day]) -> None:
        if day is None:
            return
        self.events.publish(PointsChanged(day_id=day.id, points=truncate(day.points)))
        self.events.publish(ProgressChanged(day_id=day.id, progress=self.calculate_progress(day.id)))

    @staticmethod
    def _check_not_template(task: Task) -> None:
        if task.is_template:
            raise ValidationException("task_id", "templates have no completions")

    @staticmethod
    def _normalize_points(task: Task) -> None:
        task.points = quantize_points(task.points)
        task.reward = quantize_points(task.reward)

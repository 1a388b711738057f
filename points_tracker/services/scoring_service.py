"""
Points scoring service.
Pure calculations: bonus multipliers, per-task points, day aggregate and
progress. No database access; tasks are read through their attributes, so
any object with the Task scoring fields can be scored.

Two totals exist on purpose:
- compute_points(): per-task detail view, includes bonuses and reward
- compute_aggregate(): day total, base points x completions only
"""
from decimal import Decimal
from typing import Iterable

from points_tracker.models import Task
from points_tracker.schemas import TaskScore
from points_tracker.exceptions import ValidationException
from points_tracker.decimal_utils import ZERO, ONE, to_decimal, ratio, truncate
from points_tracker.constants import (
    STREAK_BONUS_PER_DAY,
    MAX_STREAK_BONUS,
    TARGET_COMPLETION_BONUS,
    OVERSHOOT_BONUS_MAX,
)


class ScoringService:
    """Service for points calculation"""

    @staticmethod
    def compute_streak_bonus(consecutive_days: int) -> Decimal:
        """
        Calculate streak bonus.

        10% per consecutive day beyond the first, capped at 100%.
        1 day -> 0, 2 days -> 0.10, 6 days -> 0.50, 11+ days -> 1.00

        Args:
            consecutive_days: Number of consecutive days (>= 0)

        Returns:
            Bonus as a fraction (0.1 = 10%)
        """
        if consecutive_days < 0:
            raise ValidationException("consecutive_days", "must be >= 0")

        if consecutive_days <= 1:
            return ZERO

        return min((consecutive_days - 1) * STREAK_BONUS_PER_DAY, MAX_STREAK_BONUS)

    @staticmethod
    def compute_bonus(task: Task, consecutive_days: int) -> Decimal:
        """
        Calculate the bonus multiplier for a task.

        Only routines earn bonuses:
        - streak bonus when consecutive_days > 1
        - +20% once the target is met
        - up to +10% more, scaled linearly from target to max

        The components are summed without an overall cap.
        """
        if consecutive_days < 0:
            raise ValidationException("consecutive_days", "must be >= 0")

        if not task.is_routine:
            return ZERO

        completed = task.completed_count or 0
        bonus = ZERO

        if consecutive_days > 1:
            bonus += ScoringService.compute_streak_bonus(consecutive_days)

        if completed >= task.target:
            bonus += TARGET_COMPLETION_BONUS

        if completed > task.target and task.max_count > task.target:
            extra_ratio = ratio(completed - task.target, task.max_count - task.target)
            bonus += extra_ratio * OVERSHOOT_BONUS_MAX

        return bonus

    @staticmethod
    def compute_points(task: Task, bonus: Decimal = ZERO) -> Decimal:
        """
        Calculate points earned for a task.

        Steps:
        1. base = task points
        2. bonus applied as (1 + bonus)
        3. routine: scaled by completion ratio, capped at max/target;
           one-shot: all-or-nothing at target
        4. reward added regardless of completion

        Args:
            task: Task to score
            bonus: Bonus fraction from compute_bonus()

        Returns:
            Points earned (never negative)
        """
        ScoringService._check_inputs(task)
        bonus = to_decimal(bonus)
        if bonus < 0:
            raise ValidationException("bonus", "must be >= 0")

        completed = task.completed_count or 0
        points = to_decimal(task.points)

        if bonus > 0:
            points *= ONE + bonus

        if task.is_routine:
            if completed >= task.target:
                completion_ratio = min(
                    ratio(completed, task.target),
                    ratio(task.max_count, task.target)
                )
                points *= completion_ratio
            else:
                # Partial credit
                points *= ratio(completed, task.target)
        elif completed < task.target:
            points = ZERO

        return points + to_decimal(task.reward)

    @staticmethod
    def score(task: Task, consecutive_days: int) -> TaskScore:
        """Bonus and points together"""
        bonus = ScoringService.compute_bonus(task, consecutive_days)
        streak_bonus = (
            ScoringService.compute_streak_bonus(consecutive_days)
            if task.is_routine else ZERO
        )
        return TaskScore(
            consecutive_days=consecutive_days,
            streak_bonus=streak_bonus,
            bonus=bonus,
            points=ScoringService.compute_points(task, bonus)
        )

    @staticmethod
    def compute_aggregate(tasks: Iterable[Task]) -> int:
        """
        Day total: sum of completions x base points, truncated to whole points.

        Summed exactly before truncating, so fractional point values
        (e.g. 0.8 x 5) still count.
        """
        total = sum(
            (to_decimal(task.completed_count or 0) * to_decimal(task.points) for task in tasks),
            ZERO
        )
        return truncate(total)

    @staticmethod
    def compute_progress(total_points: int, goal: int) -> float:
        """
        Calculate progress toward goal.

        Returns:
            Fraction between 0 and 1 (0 when goal <= 0)
        """
        if goal <= 0:
            return 0.0
        progress = ratio(total_points, goal)
        return float(max(ZERO, min(progress, ONE)))

    @staticmethod
    def _check_inputs(task: Task) -> None:
        """Reject task values that could produce negative or undefined points"""
        if task.target is None or task.target < 1:
            raise ValidationException("target", "must be >= 1")
        if task.max_count is None or task.max_count < task.target:
            raise ValidationException("max_count", "must be >= target")
        if (task.completed_count or 0) < 0:
            raise ValidationException("completed_count", "must be >= 0")
        if to_decimal(task.points) < 0:
            raise ValidationException("points", "must be >= 0")
        if to_decimal(task.reward) < 0:
            raise ValidationException("reward", "must be >= 0")

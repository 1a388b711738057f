"""
Task repository - Data access layer for Task model.
Handles all database queries related to task instances and templates.

Write methods only stage changes in the session; the calling service owns
the transaction and commits once per operation.
"""
from datetime import date
from typing import List, Optional, Set
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from points_tracker.models import Task, Day


class TaskRepository:
    """Repository for Task data access"""

    @staticmethod
    def get_by_id(db: Session, task_id: int) -> Optional[Task]:
        """Get task by ID"""
        return db.query(Task).filter(Task.id == task_id).first()

    @staticmethod
    def get_for_day(db: Session, day_id: int) -> List[Task]:
        """Get all instances for a day ordered by position"""
        return db.query(Task).filter(
            and_(
                Task.day_id == day_id,
                Task.is_template == False
            )
        ).order_by(Task.position, Task.id).all()

    @staticmethod
    def count_for_day(db: Session, day_id: int) -> int:
        """Count instances for a day"""
        return db.query(Task).filter(
            and_(
                Task.day_id == day_id,
                Task.is_template == False
            )
        ).count()

    @staticmethod
    def next_position_for_day(db: Session, day_id: int) -> int:
        """Position after the last instance on a day"""
        highest = db.query(func.max(Task.position)).filter(
            and_(
                Task.day_id == day_id,
                Task.is_template == False
            )
        ).scalar()
        return 0 if highest is None else highest + 1

    @staticmethod
    def get_templates(
        db: Session,
        routines_only: Optional[bool] = None,
        include_deleted: bool = False
    ) -> List[Task]:
        """
        Get templates ordered by position.

        Args:
            routines_only: True for routines, False for one-shot tasks, None for all
            include_deleted: Include soft-deleted templates
        """
        query = db.query(Task).filter(Task.is_template == True)

        if not include_deleted:
            query = query.filter(Task.is_deleted == False)

        if routines_only is not None:
            query = query.filter(Task.is_routine == routines_only)

        return query.order_by(Task.position, Task.id).all()

    @staticmethod
    def count_templates(db: Session) -> int:
        """Count active templates"""
        return db.query(Task).filter(
            and_(
                Task.is_template == True,
                Task.is_deleted == False
            )
        ).count()

    @staticmethod
    def get_template_by_title(db: Session, title: str) -> Optional[Task]:
        """Get active template with exact title"""
        return db.query(Task).filter(
            and_(
                Task.is_template == True,
                Task.is_deleted == False,
                Task.title == title
            )
        ).first()

    @staticmethod
    def get_materialized_template_ids(db: Session, day_id: int) -> Set[int]:
        """Template ids that already have an instance on a day"""
        rows = db.query(Task.source_template_id).filter(
            and_(
                Task.day_id == day_id,
                Task.source_template_id.isnot(None),
                Task.is_template == False
            )
        ).all()
        return {row[0] for row in rows}

    @staticmethod
    def get_target_met_dates(
        db: Session,
        template_id: int,
        start_date: date,
        end_date: date
    ) -> Set[date]:
        """Dates in range on which an instance of the template reached its target"""
        rows = db.query(Day.date).join(Task, Task.day_id == Day.id).filter(
            and_(
                Day.date >= start_date,
                Day.date <= end_date,
                Task.source_template_id == template_id,
                Task.is_template == False,
                Task.completed_count >= Task.target
            )
        ).distinct().all()
        return {row[0] for row in rows}

    @staticmethod
    def add(db: Session, task: Task) -> Task:
        """Stage a new task and assign its id"""
        db.add(task)
        db.flush()
        return task

    @staticmethod
    def delete(db: Session, task: Task) -> None:
        """Stage a task deletion"""
        db.delete(task)
        db.flush()

    @staticmethod
    def delete_for_day(db: Session, day_id: int) -> int:
        """Stage deletion of every instance on a day"""
        tasks = TaskRepository.get_for_day(db, day_id)
        for task in tasks:
            db.delete(task)
        db.flush()
        return len(tasks)

"""
Tests for TaskService.

Tests cover:
1. Creation, duplication and templates
2. Completion clamping and day totals
3. Updates and deletes
4. Reordering
5. Day level operations and progress
6. Events and transaction failures
"""
import pytest
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy.exc import SQLAlchemyError

from points_tracker.services.task_service import TaskService
from points_tracker.schemas import TaskCreate, TaskUpdate
from points_tracker.events import EventBus, PointsChanged, ProgressChanged
from points_tracker.exceptions import (
    TaskNotFoundException, DayNotFoundException, DuplicateTemplateException,
    ValidationException, DatabaseException
)
from points_tracker.models import Day, Task


@pytest.fixture
def service(db_session, default_settings, date_service):
    return TaskService(db_session, date_service=date_service)


@pytest.fixture
def day(make_day, today):
    return make_day(today, target=5)


class TestCreate:
    """Tests for create"""

    def test_appends_to_day(self, service, day, make_task):
        """New tasks go to the end of the day"""
        make_task(day=day, title="First")

        task = service.create(TaskCreate(title="Second", target=3), day_id=day.id)

        assert task.position == 1
        assert task.day_id == day.id
        assert task.completed_count == 0

    def test_defaults(self, service, day):
        """max_count defaults to target + 2 and tasks are not routines"""
        task = service.create(TaskCreate(title="Walk", target=3), day_id=day.id)

        assert task.max_count == 5
        assert task.is_routine is False
        assert task.points == Decimal("1.0")

    def test_explicit_max_count(self, service, day):
        task = service.create(TaskCreate(title="Walk", target=3, max_count=3), day_id=day.id)
        assert task.max_count == 3

    def test_creates_today_lazily(self, service, db_session, today):
        """Without a day the effective day is created"""
        task = service.create(TaskCreate(title="Walk"))

        created_day = db_session.query(Day).filter(Day.date == today).one()
        assert task.day_id == created_day.id

    def test_unknown_day(self, service):
        with pytest.raises(DayNotFoundException):
            service.create(TaskCreate(title="Walk"), day_id=999)

    def test_template(self, service, make_task):
        """Templates have no day and are placed after existing templates"""
        make_task(title="Meditate", is_template=True)

        template = service.create(TaskCreate(title="Stretch", is_routine=True, is_template=True))

        assert template.is_template is True
        assert template.day_id is None
        assert template.position == 1


class TestDuplicate:
    """Tests for duplicate and copy_to_template"""

    def test_duplicate_resets_completions(self, service, day, make_task):
        """The copy starts at zero and is appended last"""
        original = make_task(
            day=day, title="Read", points=Decimal("2"), target=2, max_count=4,
            completed_count=3, is_routine=True, source_template_id=42
        )
        make_task(day=day, title="Other")

        copy = service.duplicate(original.id)

        assert copy.id != original.id
        assert copy.title == "Read"
        assert copy.points == Decimal("2")
        assert copy.target == 2
        assert copy.max_count == 4
        assert copy.is_routine is True
        assert copy.completed_count == 0
        assert copy.position == 2
        assert copy.day_id == day.id
        assert copy.source_template_id == 42

    def test_copy_to_template(self, service, day, make_task):
        task = make_task(day=day, title="Read", target=2, max_count=4, completed_count=2)

        template = service.copy_to_template(task.id)

        assert template.is_template is True
        assert template.day_id is None
        assert template.title == "Read"
        assert template.completed_count == 0
        assert [t.title for t in service.get_templates()] == ["Read"]

    def test_copy_to_template_rejects_duplicate_title(self, service, day, make_task):
        """An active template with the same title blocks the copy"""
        make_task(title="Read", is_template=True)
        task = make_task(day=day, title="Read")

        with pytest.raises(DuplicateTemplateException):
            service.copy_to_template(task.id)

    def test_copy_to_template_after_soft_delete(self, service, day, make_task):
        """A deleted template's title can be reused"""
        make_task(title="Read", is_template=True, is_deleted=True)
        task = make_task(day=day, title="Read")

        template = service.copy_to_template(task.id)

        assert template.title == "Read"


class TestCompletion:
    """Tests for increment and decrement"""

    def test_increment_updates_day_points(self, service, db_session, day, make_task):
        task = make_task(day=day, points=Decimal("2"), target=2, max_count=3)

        service.increment(task.id)
        service.increment(task.id)

        db_session.refresh(day)
        assert task.completed_count == 2
        assert day.points == 4

    def test_increment_clamps_at_max(self, service, day, make_task):
        """No completions past max_count"""
        task = make_task(day=day, target=1, max_count=2, completed_count=2)

        service.increment(task.id)

        assert task.completed_count == 2

    def test_decrement_clamps_at_zero(self, service, day, make_task):
        task = make_task(day=day, completed_count=0)

        service.decrement(task.id)

        assert task.completed_count == 0

    def test_decrement_updates_day_points(self, service, db_session, day, make_task):
        task = make_task(day=day, points=Decimal("1.5"), target=2, max_count=4, completed_count=2)
        service.recompute_day_points(day.id)

        service.decrement(task.id)

        db_session.refresh(day)
        assert task.completed_count == 1
        assert day.points == 1

    def test_unknown_task(self, service):
        with pytest.raises(TaskNotFoundException):
            service.increment(999)

    def test_templates_have_no_completions(self, service, make_task):
        """Completion counting only applies to day tasks"""
        template = make_task(title="Meditate", target=1, max_count=3, is_template=True)

        with pytest.raises(ValidationException):
            service.increment(template.id)
        with pytest.raises(ValidationException):
            service.decrement(template.id)

        assert service.get_task(template.id).completed_count == 0


class TestUpdate:
    """Tests for update"""

    def test_applies_only_present_fields(self, service, day, make_task):
        task = make_task(day=day, title="Read", points=Decimal("2"), target=2, max_count=4)

        service.update(task.id, TaskUpdate(title="Read more"))

        assert task.title == "Read more"
        assert task.points == Decimal("2")
        assert task.target == 2

    def test_rejects_explicit_null(self, service, day, make_task):
        task = make_task(day=day, title="Read")

        with pytest.raises(ValidationException):
            service.update(task.id, TaskUpdate(title=None))

        assert task.title == "Read"

    def test_rejects_max_below_target(self, service, day, make_task):
        """max_count below the existing target is rejected before any change"""
        task = make_task(day=day, target=3, max_count=5)

        with pytest.raises(ValidationException):
            service.update(task.id, TaskUpdate(max_count=2))

        assert task.max_count == 5

    def test_clamps_completions_to_new_max(self, service, db_session, day, make_task):
        """Lowering max_count lowers completed_count with it"""
        task = make_task(day=day, points=Decimal("1"), target=3, max_count=8, completed_count=6)
        service.recompute_day_points(day.id)

        service.update(task.id, TaskUpdate(max_count=4))

        db_session.refresh(day)
        assert task.completed_count == 4
        assert day.points == 4

    def test_points_change_recomputes_day(self, service, db_session, day, make_task):
        task = make_task(day=day, points=Decimal("1"), target=2, max_count=4, completed_count=2)

        service.update(task.id, TaskUpdate(points=Decimal("2.5")))

        db_session.refresh(day)
        assert day.points == 5


class TestDelete:
    """Tests for delete"""

    def test_deletes_instance_and_recomputes(self, service, db_session, day, make_task):
        keep = make_task(day=day, points=Decimal("1"), target=1, max_count=2, completed_count=2)
        drop = make_task(day=day, points=Decimal("3"), target=1, max_count=2, completed_count=1)
        service.recompute_day_points(day.id)

        service.delete(drop.id)

        db_session.refresh(day)
        assert [t.id for t in service.fetch_tasks(day.id)] == [keep.id]
        assert day.points == 2

    def test_template_is_soft_deleted(self, service, db_session, day, make_task):
        """Instances keep a valid source_template_id"""
        template = make_task(title="Meditate", is_template=True)
        instance = make_task(day=day, title="Meditate", source_template_id=template.id)

        service.delete(template.id)

        assert db_session.get(Task, template.id).is_deleted is True
        assert service.get_templates() == []
        assert service.get_task(instance.id).source_template_id == template.id


class TestPositions:
    """Positions stay unique per day and follow fetch order"""

    def positions(self, service, day):
        tasks = service.fetch_tasks(day.id)
        return [t.title for t in tasks], [t.position for t in tasks]

    def test_delete_renumbers_remaining(self, service, day):
        for title in "ABC":
            service.create(TaskCreate(title=title), day_id=day.id)
        first = service.fetch_tasks(day.id)[0]

        service.delete(first.id)

        assert self.positions(service, day) == (["B", "C"], [0, 1])

    def test_create_after_delete(self, service, day):
        for title in "ABC":
            service.create(TaskCreate(title=title), day_id=day.id)
        service.delete(service.fetch_tasks(day.id)[0].id)

        service.create(TaskCreate(title="D"), day_id=day.id)

        assert self.positions(service, day) == (["B", "C", "D"], [0, 1, 2])

    def test_duplicate_after_delete(self, service, day):
        for title in "ABC":
            service.create(TaskCreate(title=title), day_id=day.id)
        tasks = service.fetch_tasks(day.id)
        service.delete(tasks[1].id)

        service.duplicate(tasks[0].id)

        assert self.positions(service, day) == (["A", "C", "A"], [0, 1, 2])

    def test_create_after_gap(self, service, day, make_task):
        """New tasks go after the highest position even when positions have gaps"""
        make_task(day=day, title="A", position=0)
        make_task(day=day, title="B", position=4)

        task = service.create(TaskCreate(title="C"), day_id=day.id)

        assert task.position == 5
        assert self.positions(service, day)[0] == ["A", "B", "C"]

    def test_templates_after_existing_tasks(self, service, day, make_task):
        """Materialized instances are appended in template order"""
        make_task(title="Meditate", is_template=True)
        make_task(title="Stretch", is_template=True)
        service.create(TaskCreate(title="Walk"), day_id=day.id)

        service.recurrence_service.ensure_tasks_exist(day)

        assert self.positions(service, day) == (["Walk", "Meditate", "Stretch"], [0, 1, 2])


class TestReorder:
    """Tests for reorder"""

    @pytest.fixture
    def tasks(self, day, make_task):
        return [make_task(day=day, title=title) for title in "ABCDE"]

    def titles(self, service, day):
        return "".join(t.title for t in service.fetch_tasks(day.id))

    @pytest.mark.parametrize("from_indices, to_index, expected", [
        ([0], 3, "BCADE"),
        ([4], 0, "EABCD"),
        ([1, 3], 5, "ACEBD"),
        ([3, 1], 0, "BDACE"),
        ([2], 2, "ABCDE"),
        ([0, 1], 4, "CDABE"),
    ])
    def test_moves_tasks(self, service, day, tasks, from_indices, to_index, expected):
        """Moved tasks keep their relative order"""
        service.reorder(day.id, from_indices, to_index)

        assert self.titles(service, day) == expected
        assert [t.position for t in service.fetch_tasks(day.id)] == [0, 1, 2, 3, 4]

    def test_rejects_out_of_range(self, service, day, tasks):
        with pytest.raises(ValidationException):
            service.reorder(day.id, [5], 0)
        with pytest.raises(ValidationException):
            service.reorder(day.id, [0], 6)

        assert self.titles(service, day) == "ABCDE"


class TestDayOperations:
    """Tests for clear_tasks, reset_completions, progress and targets"""

    def test_clear_tasks(self, service, db_session, day, make_task):
        """Scenario: clearing three tasks leaves an empty day at zero"""
        for completed in (1, 2, 3):
            make_task(day=day, points=Decimal("1"), target=1, max_count=3, completed_count=completed)
        service.recompute_day_points(day.id)

        removed = service.clear_tasks(day.id)

        db_session.refresh(day)
        assert removed == 3
        assert service.fetch_tasks(day.id) == []
        assert day.points == 0

    def test_reset_completions(self, service, db_session, day, make_task):
        """Completions go to zero; templates are untouched"""
        template = make_task(title="Meditate", target=2, max_count=4, is_template=True)
        make_task(day=day, target=2, max_count=4, completed_count=3, source_template_id=template.id)
        make_task(day=day, target=1, max_count=2, completed_count=1)
        service.recompute_day_points(day.id)

        service.reset_completions(day.id)

        db_session.refresh(day)
        assert [t.completed_count for t in service.fetch_tasks(day.id)] == [0, 0]
        assert day.points == 0
        assert service.get_templates()[0].title == "Meditate"

    def test_progress(self, service, day, make_task):
        """Scenario: target 5, two tasks, aggregate 6 -> 0.6"""
        make_task(day=day, points=Decimal("1"), target=1, max_count=8, completed_count=4)
        make_task(day=day, points=Decimal("1"), target=1, max_count=8, completed_count=2)

        assert service.calculate_progress(day.id) == pytest.approx(0.6)

    def test_progress_without_tasks(self, service, day):
        assert service.calculate_progress(day.id) == 0.0

    def test_progress_is_capped(self, service, day, make_task):
        make_task(day=day, points=Decimal("10"), target=1, max_count=8, completed_count=8)
        assert service.calculate_progress(day.id) == 1.0

    def test_set_day_target(self, service, day, make_task):
        make_task(day=day, points=Decimal("1"), target=1, max_count=8, completed_count=4)

        service.set_day_target(day.id, 8)

        assert day.target == 8
        assert service.calculate_progress(day.id) == pytest.approx(0.5)

    def test_set_day_target_rejects_negative(self, service, day):
        with pytest.raises(ValidationException):
            service.set_day_target(day.id, -1)

    def test_fetch_tasks_for_missing_date(self, service, db_session, yesterday):
        """Reading a date never creates the day"""
        assert service.fetch_tasks_for_date(yesterday) == []
        assert db_session.query(Day).count() == 0

    def test_get_templates_filter(self, service, make_task):
        make_task(title="Meditate", is_routine=True, is_template=True)
        make_task(title="Call bank", is_routine=False, is_template=True)

        assert [t.title for t in service.get_templates(routines_only=True)] == ["Meditate"]
        assert [t.title for t in service.get_templates(routines_only=False)] == ["Call bank"]
        assert len(service.get_templates()) == 2


class TestScoreTask:
    """Tests for score_task"""

    def test_uses_streak(self, service, make_day, make_task, today, yesterday):
        template = make_task(title="Run", is_routine=True, is_template=True, target=1, max_count=2)
        for day_date in (yesterday, today):
            day = make_day(day_date)
            task = make_task(
                day=day, title="Run", points=Decimal("10"), target=1, max_count=2,
                completed_count=1, is_routine=True, source_template_id=template.id
            )

        score = service.score_task(task.id)

        assert score.consecutive_days == 2
        assert score.streak_bonus == Decimal("0.10")
        assert score.bonus == Decimal("0.30")
        assert score.points == Decimal("13")


class TestEvents:
    """Tests for points and progress notifications"""

    def test_increment_publishes(self, db_session, default_settings, date_service, day, make_task):
        bus = EventBus()
        received = []
        bus.subscribe(PointsChanged, received.append)
        bus.subscribe(ProgressChanged, received.append)
        service = TaskService(db_session, event_bus=bus, date_service=date_service)
        task = make_task(day=day, points=Decimal("3"), target=1, max_count=5)

        service.increment(task.id)

        assert received == [
            PointsChanged(day_id=day.id, points=3),
            ProgressChanged(day_id=day.id, progress=pytest.approx(0.6)),
        ]

    def test_failing_listener_does_not_undo_change(self, service, db_session, day, make_task):
        """The mutation stays committed and later listeners still run"""
        received = []

        def broken(event):
            raise RuntimeError("listener failed")

        service.events.subscribe(PointsChanged, broken)
        service.events.subscribe(PointsChanged, received.append)
        task = make_task(day=day, target=1, max_count=2)

        service.increment(task.id)

        db_session.expire_all()
        assert service.get_task(task.id).completed_count == 1
        assert len(received) == 1

    def test_no_event_on_noop(self, service, day, make_task):
        received = []
        service.events.subscribe(PointsChanged, received.append)
        task = make_task(day=day, completed_count=0)

        service.decrement(task.id)

        assert received == []


class TestTransactions:
    """Tests for storage failures"""

    def test_commit_failure_rolls_back(self, service, db_session, day, make_task):
        """A failed commit leaves nothing half-applied and publishes nothing"""
        task = make_task(day=day, points=Decimal("2"), target=1, max_count=3)
        received = []
        service.events.subscribe(PointsChanged, received.append)

        with patch.object(db_session, "commit", side_effect=SQLAlchemyError("disk I/O error")):
            with pytest.raises(DatabaseException):
                service.increment(task.id)

        assert service.get_task(task.id).completed_count == 0
        db_session.refresh(day)
        assert day.points == 0
        assert received == []

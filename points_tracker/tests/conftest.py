"""
Shared fixtures: an isolated in-memory database per test, settings,
a pinned clock and record factories.
"""
import os

# Keep the module-level engine off disk; tests use their own engine below
os.environ.setdefault("POINTS_TRACKER_DB_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from points_tracker.database import Base
from points_tracker.models import Task, Day
from points_tracker.repositories.settings_repository import SettingsRepository
from points_tracker.services.date_service import DateService

FIXED_NOW = datetime(2026, 1, 30, 10, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=True, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def default_settings(db_session):
    return SettingsRepository.get(db_session)


@pytest.fixture
def today():
    return FIXED_NOW.date()


@pytest.fixture
def yesterday(today):
    return today - timedelta(days=1)


@pytest.fixture
def date_service():
    """DateService pinned to FIXED_NOW"""
    return DateService(clock=lambda: FIXED_NOW)


@pytest.fixture
def make_day(db_session):
    """Create and commit a Day"""
    def factory(target_date, target=5, points=Decimal("0")):
        day = Day(date=target_date, target=target, points=points)
        db_session.add(day)
        db_session.commit()
        return day
    return factory


@pytest.fixture
def make_task(db_session):
    """
    Create and commit a Task.

    Instances are appended to their day; templates (is_template=True) get
    no day. Any Task column can be overridden by keyword.
    """
    def factory(day=None, **fields):
        values = dict(
            title="Task",
            points=Decimal("1"),
            completed_count=0,
            target=1,
            max_count=1,
            reward=Decimal("0"),
            is_routine=False,
            is_template=False,
        )
        values.update(fields)

        if "position" not in values:
            query = db_session.query(Task)
            if values["is_template"]:
                query = query.filter(Task.is_template == True)
            else:
                query = query.filter(Task.day_id == (day.id if day else None))
            values["position"] = query.count()

        task = Task(day_id=day.id if day else None, **values)
        db_session.add(task)
        db_session.commit()
        return task
    return factory

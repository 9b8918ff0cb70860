from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chronoplan.api.routes import ReplannerRegistry, get_replanners, get_scheduler
from chronoplan.config.settings import Settings
from chronoplan.engine.replanning import RePlanningEngine
from chronoplan.engine.scheduler import AutoScheduler
from chronoplan.main import app
from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import BlockType, Task, TimeBlock
from chronoplan.storage.cache import get_cache
from chronoplan.storage.database import Base, get_db

# Monday morning, before working hours start.
FIXED_NOW = datetime(2026, 10, 19, 8, 0)


class InMemoryCache:
    """Stands in for ScheduleCache without a Redis server."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl_seconds=None):
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)

    def health_check(self):
        return True


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def settings():
    """Settings isolated from the environment: no Redis, no database file."""
    return Settings(
        debug=False,
        database_url="sqlite://",
        redis_url="redis://localhost:6379/15",
        cache_enabled=True,
        ortools_time_limit_seconds=2.0,
    )


@pytest.fixture
def scheduler(settings, now):
    return AutoScheduler(settings=settings, clock=lambda: now)


@pytest.fixture
def replanner(settings, now):
    return RePlanningEngine(settings=settings, clock=lambda: now)


@pytest.fixture
def constraints():
    """Default 09:00-17:00 working day, flat energy profile."""
    return SchedulingConstraints()


@pytest.fixture
def make_task():
    def factory(task_id, title="Write summary", minutes=60, **kwargs):
        kwargs.setdefault("domain_id", "work")
        kwargs.setdefault("user_id", "user-1")
        return Task(id=task_id, title=title, estimated_minutes=minutes, **kwargs)
    return factory


@pytest.fixture
def make_block(now):
    def factory(block_id, start_hour, minutes=60, day_offset=0, start_minute=0, **kwargs):
        start = now.replace(hour=start_hour, minute=start_minute) + timedelta(days=day_offset)
        kwargs.setdefault("title", f"Block {block_id}")
        kwargs.setdefault("domain_id", "work")
        kwargs.setdefault("user_id", "user-1")
        kwargs.setdefault("type", BlockType.WORK)
        return TimeBlock(id=block_id, start_time=start, end_time=start + timedelta(minutes=minutes), **kwargs)
    return factory


@pytest.fixture
def db_engine():
    """In-memory SQLite shared across sessions of one test."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def client(db_engine, scheduler, cache):
    """TestClient wired to the in-memory database, cache double and fixed clock."""
    testing_session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)
    registry = ReplannerRegistry(scheduler)

    def override_get_db():
        db = testing_session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_replanners] = lambda: registry
    app.dependency_overrides[get_cache] = lambda: cache
    yield TestClient(app)
    app.dependency_overrides.clear()

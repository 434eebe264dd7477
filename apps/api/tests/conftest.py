"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is dropped
and recreated for every test, so nothing persists between tests.
"""
import os
import sys
from types import SimpleNamespace
from uuid import uuid4

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REPLICA_DATABASE_URL", None)
os.environ.pop("POSTGRES_REPLICA_HOST", None)
os.environ.pop("SENTRY_DSN", None)
os.environ.setdefault("LOG_FORMAT", "text")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402

import models  # noqa: E402,F401
from core.database import Base, SessionLocal, engine  # noqa: E402
from fixtures.program_fixtures import make_program_output  # noqa: E402
from services.program_engine import feature_flags  # noqa: E402
from services.program_engine.consistency import read_after_write_router  # noqa: E402
from services.program_engine.profile import UserProfile  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_schema():
    """Recreate every table so each test starts from an empty database."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    read_after_write_router.clear()
    feature_flags.clear_local_cache()
    yield
    read_after_write_router.clear()
    feature_flags.clear_local_cache()


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch):
    """Flag resolution uses the in-process cache unless a test passes a client."""
    monkeypatch.setattr(feature_flags, "get_redis_client", lambda: None)


@pytest.fixture(scope="function")
def db_session():
    """
    Primary database session.

    Code under test commits through it; the schema reset above is what
    keeps tests isolated.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def owner_id():
    return uuid4()


class FakeClock:
    """Monotonic clock moved by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Records requested sleeps instead of sleeping."""
    calls = []
    return SimpleNamespace(calls=calls, sleep=calls.append)


@pytest.fixture
def intermediate_profile():
    return UserProfile.model_validate({
        "experience_level": "intermediate",
        "goal": "hypertrophy",
        "training_months": 24,
        "equipment": ["barbell", "dumbbells", "cable station", "leg press machine"],
        "unit": "kg",
        "days_per_week": 2,
        "strength_estimates": {
            "squat": {"value": 140, "confidence": "actual_1rm"},
            "deadlift": {"value": 145, "confidence": "actual_1rm"},
            "bench": {"value": 100, "confidence": "estimated_1rm"},
        },
    })


@pytest.fixture
def program_output():
    return make_program_output()


@pytest.fixture
def beginner_profile():
    return UserProfile.model_validate({
        "experience_level": "beginner",
        "goal": "strength",
        "training_months": 3,
        "unit": "lb",
        "days_per_week": 2,
    })

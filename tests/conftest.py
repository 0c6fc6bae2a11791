"""
Shared fixtures for the cropadvisor test suite.
"""
from datetime import date, timedelta

import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from cropadvisor.core.config import Settings
from cropadvisor.database import Base, create_db_engine
from cropadvisor.models import database_models  # noqa: F401
from cropadvisor.models.domain import Farm, GrowingSession, Observation, SoilSample, Variety

TODAY = date(2024, 3, 1)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def farm():
    return Farm(id=1, name="Mazowe North", latitude=-17.5, longitude=30.97, elevation=1250.0)


@pytest.fixture
def variety():
    return Variety(name="ZM521", maturity_days=120, optimal_temp_min=20.0, optimal_temp_max=32.0)


@pytest.fixture
def make_session(farm, variety):
    """Build a growing session planted `days` before TODAY."""
    def _make(days, variety_override=None, session_id=1, session_farm=None):
        return GrowingSession(
            id=session_id,
            farm=session_farm or farm,
            variety=variety_override or variety,
            planting_date=TODAY - timedelta(days=days),
        )
    return _make


@pytest.fixture
def make_observations():
    """Build `count` consecutive daily observations ending yesterday."""
    def _make(count=7, farm_id=1, source="test", **fields):
        return [
            Observation(date=TODAY - timedelta(days=i + 1), source=source, farm_id=farm_id, **fields)
            for i in range(count)
        ]
    return _make


@pytest.fixture
def make_soil():
    def _make(farm_id=1, sample_date=TODAY - timedelta(days=5), **fields):
        return SoilSample(farm_id=farm_id, sample_date=sample_date, soil_type="sandy loam", **fields)
    return _make


@pytest.fixture
def mock_client():
    """httpx.Client factory backed by a request handler."""
    def _make(handler):
        return httpx.Client(transport=httpx.MockTransport(handler))
    return _make


@pytest.fixture
def db():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()

"""
pytest configuration for the FarmSight test suite.

The app is pointed at an in-memory SQLite database before anything from
``farmsight`` is imported, and external capabilities are replaced with
offline fakes.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATION_BACKEND"] = "log"
os.environ["IMAGERY_BACKEND"] = "synthetic"
os.environ["BULK_ANALYSIS_DELAY_SECONDS"] = "0"
os.environ["LLM_API_KEY"] = ""

from datetime import date, datetime, timedelta  # noqa: E402

import numpy as np  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from farmsight.api.deps import (  # noqa: E402
    get_imagery_provider,
    get_notification_channel,
    get_stress_detector,
)
from farmsight.core.security import create_access_token, hash_password  # noqa: E402
from farmsight.db.base import Base  # noqa: E402
from farmsight.db.database import SessionLocal, engine  # noqa: E402
from farmsight.db.session import get_db  # noqa: E402
from farmsight.main import app  # noqa: E402
from farmsight.models.farm import Farm  # noqa: E402
from farmsight.models.ndvi_data import NDVIData  # noqa: E402
from farmsight.models.user import User  # noqa: E402
from farmsight.services.integrations.imagery import SyntheticImageryProvider  # noqa: E402
from farmsight.services.integrations.notifications import LoggingChannel  # noqa: E402
from farmsight.services.stress.analyzer import StressDetector  # noqa: E402
from farmsight.services.stress.classifier import NdviSample, classify_ndvi  # noqa: E402


class FakeClock:
    """Manually advanced replacement for ``utcnow``."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 7, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_samples(values, latest=date(2024, 7, 1), step_days=8):
    """NdviSample list, newest first, one every ``step_days``."""
    return [
        NdviSample(date=latest - timedelta(days=i * step_days), ndvi=v)
        for i, v in enumerate(values)
    ]


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return LoggingChannel()


@pytest.fixture
def client(channel):
    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_channel] = lambda: channel
    app.dependency_overrides[get_stress_detector] = lambda: StressDetector()
    app.dependency_overrides[get_imagery_provider] = lambda: SyntheticImageryProvider(
        rng=np.random.default_rng(7)
    )

    yield TestClient(app)

    app.dependency_overrides.clear()


def create_user(db, email, role="farmer", phone_number="081234567890", is_active=True):
    user = User(
        email=email,
        hashed_password=hash_password("secret123"),
        full_name=email.split("@")[0].title(),
        phone_number=phone_number,
        role=role,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_farm(db, owner, name="North Field", **overrides):
    values = dict(
        owner_id=owner.id,
        name=name,
        latitude=-7.456,
        longitude=110.123,
        area_hectares=12.5,
        crop_type="rice",
        planting_date=date(2024, 3, 1),
    )
    values.update(overrides)

    farm = Farm(**values)
    db.add(farm)
    db.commit()
    db.refresh(farm)
    return farm


def add_ndvi(db, farm, values, latest=date(2024, 7, 1), step_days=8):
    """Store readings for ``farm``; ``values`` are newest first."""
    for i, value in enumerate(values):
        db.add(
            NDVIData(
                farm_id=farm.id,
                date=latest - timedelta(days=i * step_days),
                ndvi=value,
                cloud_cover=5.0,
                satellite="Sentinel-2",
                stress_level=classify_ndvi(value).value,
            )
        )
    db.commit()


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def farmer(db_session):
    return create_user(db_session, "farmer@example.com")


@pytest.fixture
def admin(db_session):
    return create_user(db_session, "admin@example.com", role="admin")


@pytest.fixture
def farm(db_session, farmer):
    return create_farm(db_session, farmer)

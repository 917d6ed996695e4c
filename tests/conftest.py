# tests/conftest.py

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.events import event_bus
from app.core.redis import get_redis_client
from app.db.session import Base
from app.dependencies import get_db
from app.main import app
from app.models.points_config import PointsConfig

# In-memory SQLite shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the service. TTLs are recorded, not enforced."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.published = []

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1


@pytest.fixture(scope="function")
def session_factory():
    """
    Fresh schema for every test. Services open their own sessions through this factory.
    """
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(autouse=True)
def clean_event_bus():
    event_bus.clear()
    yield
    event_bus.clear()


@pytest.fixture
def recorded_events():
    """Subscribes a recorder to the given event names; returns the list of (name, payload)."""
    received = []

    def subscribe(*event_names):
        for name in event_names:
            event_bus.subscribe(name, lambda event_name, payload: received.append((event_name, payload)))
        return received

    return subscribe


@pytest.fixture
def points_config(db_session):
    """Creates the config row with points and expiration switched on. Tests tweak it as needed."""
    def _configure(**overrides):
        values = {
            "points_enabled": True,
            "point_earning_rate": 5,
            "point_min_redemption": 1000,
            "point_max_redemption_pct": 50,
            "point_expiration_enabled": True,
            "point_expiration_months": 12,
        }
        values.update(overrides)
        config = PointsConfig(**values)
        db_session.add(config)
        db_session.commit()
        return config

    return _configure


# --- API ---

def make_token(user_id: str, role: str | None = None) -> str:
    claims = {"sub": user_id, "exp": datetime.now(timezone.utc) + timedelta(minutes=15)}
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


@pytest.fixture
def user_auth_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('user-1')}"}


@pytest.fixture
def admin_auth_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('admin-1', role='ADMIN')}"}


@pytest_asyncio.fixture
async def client(session_factory, fake_redis):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    async def override_get_redis_client():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = override_get_redis_client
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()

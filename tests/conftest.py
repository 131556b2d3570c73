# tests/conftest.py
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TESTING"] = "1"
os.environ["API_KEY"] = "supersecret"
os.environ["LOG_FILE"] = ""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from pds_dns.api.deps import get_verification_engine
from pds_dns.core.errors import TransientLookupFailure
from pds_dns.main import app
from pds_dns.services.verification import VerificationEngine
from pds_dns.storage.db import build_engine, build_sessionmaker, get_db, init_db
from pds_dns.utils.time_utils import utcnow

HEADERS = {"X-API-Key": "supersecret"}


class FakeResolver:
    """Public DNS stand-in: names map to published TXT values."""

    def __init__(self):
        self.records = {}
        self.failing = set()
        self.queries = []

    def publish(self, name, value):
        self.records.setdefault(name, []).append(value)

    async def lookup_txt(self, name):
        self.queries.append(name)
        if name in self.failing:
            raise TransientLookupFailure(f"Timed out querying TXT at {name}")
        return list(self.records.get(name, []))


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, payload, service_type):
        self.sent.append((payload, service_type))
        return True


class FrozenClock:
    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


# Fresh in-memory database per test
@pytest.fixture
async def db_engine():
    engine = build_engine("sqlite+aiosqlite://", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_sessionmaker(db_engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def verification_engine(resolver, notifier, clock):
    return VerificationEngine(
        resolver=resolver,
        notifier=notifier,
        max_attempts=5,
        token_expiry=86400,
        native_via_public_dns=True,
        clock=clock,
    )


# Return isolated AsyncClient wired to the per-test database and engine
@pytest.fixture
async def client(session_factory, verification_engine):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_verification_engine] = lambda: verification_engine
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

"""
Test fixtures for farewatch backend tests.
"""
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from farewatch.config import Settings
from farewatch.database import Base, get_db
from farewatch.main import app
from farewatch.scheduler import PriceCheckScheduler
from farewatch.services.alert_recorder import AlertRecorder
from farewatch.services.notification import EmailNotifier
from farewatch.services.price_checker import PriceCheckService
from farewatch.services.price_store import PriceStore
from farewatch.services.quote_providers import QuoteChain

from helpers import FakeClock, FakeProvider


# Create test database engine (file-backed SQLite so store calls from worker
# threads each get their own connection)
TEST_DATABASE_PATH = os.path.join(tempfile.mkdtemp(prefix="farewatch-tests-"), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DATABASE_PATH}"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


# Enable foreign key constraints for SQLite
@event.listens_for(test_engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory(db_session):
    return TestSessionLocal


@pytest.fixture
def store(session_factory) -> PriceStore:
    return PriceStore(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        scheduler_enabled=False,
        check_concurrency=3,
        provider_timeout_seconds=1.0,
        alert_cooldown_hours=24,
        resend_api_key="",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def quote_provider() -> FakeProvider:
    return FakeProvider("fake", default=[450])


@pytest.fixture
def app_services(store, settings, clock, quote_provider):
    """
    Attach a test service graph to app.state.
    ASGITransport does not run the lifespan, so nothing else sets it.
    """
    quotes = QuoteChain([quote_provider], timeout_seconds=settings.provider_timeout_seconds)
    notifier = EmailNotifier(settings=settings)
    recorder = AlertRecorder(store, cooldown_hours=settings.alert_cooldown_hours, clock=clock)
    checker = PriceCheckService(store, quotes, notifier, recorder, settings=settings, clock=clock)
    scheduler = PriceCheckScheduler(checker.run_cycle)

    app.state.price_store = store
    app.state.quotes = quotes
    app.state.notifier = notifier
    app.state.checker = checker
    app.state.scheduler = scheduler
    yield app.state

    for name in ("price_store", "quotes", "notifier", "checker", "scheduler"):
        setattr(app.state, name, None)


@pytest.fixture
def override_get_db(db_session):
    """
    Override the get_db dependency to use the test database session.
    """
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    return _override_get_db


@pytest.fixture(scope="function")
async def client(override_get_db, app_services):
    """
    Create an async test client with the database dependency overridden.
    """
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clear overrides after test
    app.dependency_overrides.clear()

"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backoffice.app.main import app
from backoffice.app.db.session import get_db, Base
from backoffice.app.core.jwt import create_principal_token
from backoffice.app.core.redis_client import get_redis
from backoffice.app.models.directory import Client, Operator, Booking
from backoffice.app.models.payment_method import FinancePaymentMethod
import backoffice.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

AGENCY_ID = 1
OTHER_AGENCY_ID = 2


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def redis_mock():
    return MockRedis()


@pytest.fixture(autouse=True)
def apply_overrides(redis_mock):
    """Point the app at the in-memory database and the mock Redis."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_mock

    async def override_get_db():
        async with TestingSessionLocal() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def override_get_redis():
        return redis_mock

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def session_factory():
    """Opens extra sessions on the test database, one per concurrent request."""
    return TestingSessionLocal


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


def auth_headers(user_id: int = 10, agency_id: int = AGENCY_ID, role: str = "gerente") -> dict:
    """Bearer header for a caller of the given agency and role."""
    token = create_principal_token(user_id=user_id, agency_id=agency_id, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def directory(db_session):
    """
    Directory rows for two agencies.

    Agency 1 gets a client, an operator, a booking and three payment methods
    (cash, bank transfer requiring an account label, credit account). Agency
    2 gets a client, an operator and a booking.
    """
    rows = {
        "client": Client(agency_id=AGENCY_ID, first_name="Ana", last_name="Paz"),
        "operator": Operator(agency_id=AGENCY_ID, name="Andes Travel"),
        "booking": Booking(agency_id=AGENCY_ID, details="Bariloche 2026"),
        "cash": FinancePaymentMethod(agency_id=AGENCY_ID, name="Efectivo", code="cash"),
        "transfer": FinancePaymentMethod(
            agency_id=AGENCY_ID, name="Transferencia", code="transfer", requires_account=True
        ),
        "credit": FinancePaymentMethod(
            agency_id=AGENCY_ID, name="Cuenta corriente", code="credit", uses_credit_account=True
        ),
        "other_client": Client(agency_id=OTHER_AGENCY_ID, first_name="Luis", last_name="Sosa"),
        "other_operator": Operator(agency_id=OTHER_AGENCY_ID, name="Patagonia Tours"),
        "other_booking": Booking(agency_id=OTHER_AGENCY_ID, details="Ushuaia"),
    }
    db_session.add_all(rows.values())
    await db_session.commit()
    return rows


@pytest.fixture
def make_headers():
    """Factory fixture for per-caller auth headers."""
    return auth_headers

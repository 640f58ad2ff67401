import os
from collections.abc import AsyncGenerator
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from app.config import settings
from app.database import get_db
from app.dependencies import get_cache_manager
from app.main import app
from app.models import metadata

# PostgreSQL-backed tests only run against an explicit test database
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

if TEST_DATABASE_URL and TEST_DATABASE_URL == settings.database_url:
    raise RuntimeError("TEST_DATABASE_URL must not point at the application database")

if TEST_DATABASE_URL and not TEST_DATABASE_URL.startswith("postgresql+asyncpg://"):
    TEST_DATABASE_URL = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


@pytest.fixture(autouse=True)
def no_outbound_email(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests from calling real serverless functions."""
    monkeypatch.setattr(settings, "functions_base_url", "")


@pytest.fixture
def booking_date() -> date:
    """A date safely in the future."""
    return date.today() + timedelta(days=7)


@pytest.fixture
def mock_db() -> AsyncMock:
    """An AsyncSession double; tests queue results on execute.side_effect."""
    return AsyncMock(spec=AsyncSession)


@pytest_asyncio.fixture
async def client(mock_db: AsyncMock) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by the mocked session and no cache."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    """Headers carrying the admin secret."""
    return {"X-Admin-Secret": settings.admin_secret}


@pytest.fixture
def sample_booking_data(booking_date: date) -> dict:
    """Sample booking request body."""
    return {
        "service": "hepa",
        "vehicle": "model3",
        "appointment_date": booking_date.isoformat(),
        "appointment_time": "10:00",
        "location": "nagytarcsa",
        "name": "Teszt Elek",
        "email": "teszt.elek@example.com",
        "phone": "+36 30 123 4567",
    }


@pytest_asyncio.fixture
async def pg_sessionmaker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory on a freshly created schema in the test database."""
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL is not set")

    # Use NullPool to avoid event loop issues between tests
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()

"""Test configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tours_api.core.database import Base, get_db
from tours_api.models import *  # noqa: F403 - Import all models
from tours_api.schemas.tour import CreateTourRequest
from tours_api.services.tour_service import TourService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create a test FastAPI application."""
    from fastapi import FastAPI

    from tours_api.main import register_exception_handlers, register_routers

    # Create a simplified test app without lifespan or middleware
    app = FastAPI(
        title="Tours API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    register_exception_handlers(app)
    register_routers(app)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_tour_data(**overrides):
    """Build a valid tour creation payload (camelCase keys)."""
    data = {
        "name": "Northern Lights Adventure",
        "duration": 5,
        "maxGroupSize": 12,
        "difficulty": "medium",
        "ratingsAverage": 4.7,
        "ratingsQuantity": 10,
        "price": 500,
        "summary": "Experience the magical Aurora Borealis in Iceland",
        "imageCover": "northern-lights.jpg",
        "images": ["northern-lights-1.jpg"],
        "startDates": ["2024-12-15T09:00:00Z", "2025-01-10T09:00:00Z"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def sample_tour_data():
    """Sample tour data for testing."""
    return make_tour_data()


@pytest.fixture
def tour_data_factory():
    """Factory for tour payloads with overrides."""
    return make_tour_data


@pytest_asyncio.fixture
async def create_tours(test_session):
    """Insert tours through the service; returns the created models."""

    async def _create(*payloads):
        service = TourService(test_session)
        created = []
        for payload in payloads:
            created.append(await service.create_tour(CreateTourRequest.model_validate(payload)))
        return created

    return _create


@pytest_asyncio.fixture
async def ten_tours(create_tours):
    """Ten tours priced 100..1000 named 'Catalogue Tour 01'..'Catalogue Tour 10'."""
    return await create_tours(*[
        make_tour_data(name=f"Catalogue Tour {i:02d}", price=100 * i, startDates=[])
        for i in range(1, 11)
    ])

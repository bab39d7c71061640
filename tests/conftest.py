from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.config.settings import Settings, get_settings
from spoils.infra.database import Database, get_database
from spoils.main import create_app
from spoils.v1.core.registries import JobRegistry
from spoils.v1.infra.jobs.queue import JobQueue
from spoils.v1.infra.jobs.registry_init import build_job_registry, get_job_registry
from spoils.v1.infra.jobs.store import JobStore
from spoils.v1.infra.jobs.worker import JobWorker
from spoils.v1.ingredients.service import IngredientService
from spoils.v1.providers.nutrition import StubNutritionProvider
from spoils.v1.providers.registry_init import get_nutrition_provider

from fakes import FakeProductProvider


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings bound to a per-test SQLite database file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'spoils.db'}",
        environment="test",
        debug=False,
        log_level="WARNING",
        job_concurrency=5,
        job_poll_interval_ms=10,
        job_heartbeat_interval_s=1,
        job_reclaim_interval_s=1,
        job_shutdown_timeout_s=5,
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Create a fresh database with all tables for each test."""
    db = Database(settings)
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with database.SessionLocal() as session:
        yield session


@pytest.fixture
def nutrition_provider() -> StubNutritionProvider:
    """Stub nutrition catalog; tests add records keyed by casefolded name."""
    return StubNutritionProvider()


@pytest.fixture
def product_provider() -> FakeProductProvider:
    return FakeProductProvider()


@pytest.fixture
def registry(
    settings: Settings,
    nutrition_provider: StubNutritionProvider,
    product_provider: FakeProductProvider,
) -> JobRegistry:
    """Frozen registry with every task type wired to the fake providers."""
    return build_job_registry(settings, nutrition_provider, product_provider)


@pytest.fixture
def store(settings: Settings, registry: JobRegistry) -> JobStore:
    return JobStore(settings, registry)


@pytest.fixture
def queue(database: Database, store: JobStore) -> JobQueue:
    return JobQueue(database, store)


@pytest.fixture
def worker(
    settings: Settings, database: Database, registry: JobRegistry, store: JobStore
) -> JobWorker:
    return JobWorker(settings, database, registry, store, worker_id="test-worker")


@pytest.fixture
def ingredient_service(
    settings: Settings, nutrition_provider: StubNutritionProvider
) -> IngredientService:
    return IngredientService(settings, nutrition_provider)


@pytest.fixture
def app(
    settings: Settings,
    database: Database,
    registry: JobRegistry,
    nutrition_provider: StubNutritionProvider,
) -> FastAPI:
    """Create a test FastAPI application with test database and registry."""
    app = create_app(settings)

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_job_registry] = lambda: registry
    app.dependency_overrides[get_nutrition_provider] = lambda: nutrition_provider

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

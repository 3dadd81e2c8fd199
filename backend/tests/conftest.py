"""Pytest configuration and fixtures for onboarding tests.

Provides an in-memory SQLite database, a seeded workspace, small step
registries, and an HTTP client bound to the FastAPI app.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from onboard.database import Base, get_db
from onboard.deps import get_lead_scraper_client, get_registry
from onboard.engine import OnboardingContext, StepDefinition, StepRegistry
from onboard.main import app
from onboard.models.workspace import Workspace

WORKSPACE_ID = "ws-1"
OWNER_ID = "user-1"


# ── Step helpers ─────────────────────────────────────────────────

def make_step(step_id: str, order: int, result: Any = None, **overrides) -> StepDefinition:
    """Minimal StepDefinition whose execute() returns ``result``."""

    async def execute(data, context):
        return result if result is not None else {"step": step_id}

    fields = dict(
        id=step_id,
        title=step_id.replace("-", " ").title(),
        description=f"{step_id} description",
        order=order,
        required=True,
        execute=execute,
    )
    fields.update(overrides)
    return StepDefinition(**fields)


def make_context(completed=(), results=None, **overrides) -> OnboardingContext:
    fields = dict(
        workspace_id=WORKSPACE_ID,
        user_id=OWNER_ID,
        user_email="owner@example.com",
        workspace_name="Acme",
        completed_step_ids=list(completed),
        step_results=results or {},
    )
    fields.update(overrides)
    return OnboardingContext(**fields)


@pytest.fixture
def chain_registry() -> StepRegistry:
    """p1 → p2, both required."""
    return StepRegistry.from_steps([
        make_step("p1", 1),
        make_step("p2", 2, dependencies=["p1"]),
    ])


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite shared across the connections of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def workspace(db_session: AsyncSession) -> Workspace:
    """Fresh workspace with no onboarding progress."""
    ws = Workspace(
        id=WORKSPACE_ID,
        name="Acme",
        owner_id=OWNER_ID,
        completed_step_ids=[],
        step_results={},
    )
    db_session.add(ws)
    await db_session.flush()
    return ws


# ── HTTP client ──────────────────────────────────────────────────

@pytest.fixture
def test_registry(chain_registry) -> StepRegistry:
    """Registry served by the app under test; override per module as needed."""
    return chain_registry


@pytest.fixture
def lead_scraper_client():
    """LeadScraperClient handed to the provisioning endpoint (None = unconfigured)."""
    return None


@pytest_asyncio.fixture
async def client(db_session, test_registry, lead_scraper_client) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database, registry and Lead Scraper overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: test_registry
    app.dependency_overrides[get_lead_scraper_client] = lambda: lead_scraper_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")

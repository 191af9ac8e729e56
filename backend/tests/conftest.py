"""Common test fixtures and configuration for pytest."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from seatwise.models._base import Base

# Import all fixtures so they are automatically available for all tests
from tests.fixtures.common import (  # noqa
    mock_db,
    mock_organization,
    organization_id,
    patched_crud,
    pro_plan,
    starter_plan,
)


@pytest.fixture(autouse=True)
def clear_gateway_registry():
    """Gateway clients are cached per provider; start every test with none."""
    from seatwise.integrations import payment_gateway

    payment_gateway._gateways.clear()
    yield
    payment_gateway._gateways.clear()


# Test Database Connection for Integration Tests
@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with every billing table created."""
    import seatwise.models  # noqa: F401

    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """A fresh session on the test engine."""
    async with AsyncSession(db_engine, expire_on_commit=False) as session:
        yield session

"""Integration test fixtures for tenancy database tests.

These fixtures require a running PostgreSQL instance. The tests are skipped
unless MERENDA_INTEGRATION_DB is set; the connection itself is configured
through the usual MERENDA_DB_* variables. Every test starts from freshly
created directory and business tables.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import create_lifecycle_engine
from infrastructure.database.models import Base
from infrastructure.settings import DatabaseSettings, TenancySettings
from tenancy.infrastructure.models import UserModel
from tenancy.infrastructure.tenant_owned_tables import business_metadata


def pytest_collection_modifyitems(config, items):
    if os.getenv("MERENDA_INTEGRATION_DB"):
        return
    skip = pytest.mark.skip(reason="MERENDA_INTEGRATION_DB is not set")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Engine on a clean schema, dropped again after the test."""
    engine = create_lifecycle_engine(DatabaseSettings(), TenancySettings())
    async with engine.begin() as connection:
        await connection.run_sync(business_metadata.drop_all)
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
        await connection.run_sync(business_metadata.create_all)

    yield engine

    async with engine.begin() as connection:
        await connection.run_sync(business_metadata.drop_all)
        await connection.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def admin_user(session_factory) -> str:
    """A user who becomes the first admin of provisioned tenants."""
    async with session_factory() as session:
        session.add(
            UserModel(id="user-ana", name="Ana", email="ana@merenda.app", active=True)
        )
        await session.commit()
    return "user-ana"

"""Unit test fixtures with mocked dependencies."""

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from pydantic import SecretStr
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession


@pytest.fixture
def mock_db_settings():
    """Provide test database settings."""
    from infrastructure.settings import DatabaseSettings

    return DatabaseSettings(
        host="testhost",
        port=5432,
        database="testdb",
        username="testuser",
        password=SecretStr("testpass"),
    )


@pytest.fixture
def tenancy_settings():
    """Provide tenancy settings with subdomain selection enabled."""
    from infrastructure.settings import TenancySettings

    return TenancySettings(base_domain="merenda.app")


@pytest.fixture
def mock_session():
    """Mock AsyncSession whose ``begin()`` works as an async context manager."""
    session = Mock(spec=AsyncSession)

    ctx_manager = AsyncMock()
    ctx_manager.__aenter__ = AsyncMock(return_value=None)
    ctx_manager.__aexit__ = AsyncMock(return_value=None)

    session.begin = Mock(return_value=ctx_manager)
    session.execute = AsyncMock()
    return session


@pytest.fixture
def mock_audit_log():
    """Mock audit log port."""
    audit = MagicMock()
    audit.record = AsyncMock()
    audit.list_entries = AsyncMock(return_value=[])
    return audit


@pytest.fixture
def compile_pg():
    """Render a statement with literal parameters using the PostgreSQL dialect."""

    def _compile(statement) -> str:
        return str(
            statement.compile(
                dialect=postgresql.dialect(),
                compile_kwargs={"literal_binds": True},
            )
        )

    return _compile

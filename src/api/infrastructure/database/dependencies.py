"""Database dependency injection for FastAPI.

Provides async session factories for read and write operations with proper
transaction management and connection pooling.
"""

from __future__ import annotations

import threading
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import create_read_engine, create_write_engine
from infrastructure.observability import DefaultDatabaseProbe
from infrastructure.settings import get_database_settings, get_tenancy_settings

_probe = DefaultDatabaseProbe()

# Module-level engine instances (created on first use)
_write_engine: AsyncEngine | None = None
_read_engine: AsyncEngine | None = None

_write_sessionmaker: async_sessionmaker[AsyncSession] | None = None
_read_sessionmaker: async_sessionmaker[AsyncSession] | None = None

# Thread lock for safe engine initialization
_engine_lock = threading.Lock()


def get_write_engine() -> AsyncEngine:
    """Get the write database engine (singleton).

    Uses double-check locking for thread-safe initialization and caches the
    sessionmaker alongside the engine.

    Returns:
        Configured async engine for write operations
    """
    global _write_engine, _write_sessionmaker
    if _write_engine is None:
        with _engine_lock:
            if _write_engine is None:
                settings = get_database_settings()
                _write_engine = create_write_engine(settings, get_tenancy_settings())
                _write_sessionmaker = async_sessionmaker(
                    _write_engine,
                    expire_on_commit=False,
                    class_=AsyncSession,
                )
                _probe.engine_created(
                    purpose="write", pool_size=settings.pool_max_connections
                )
    return _write_engine


def get_read_engine() -> AsyncEngine:
    """Get the read database engine (singleton).

    Returns:
        Configured async engine for read operations
    """
    global _read_engine, _read_sessionmaker
    if _read_engine is None:
        with _engine_lock:
            if _read_engine is None:
                settings = get_database_settings()
                _read_engine = create_read_engine(settings, get_tenancy_settings())
                _read_sessionmaker = async_sessionmaker(
                    _read_engine,
                    expire_on_commit=False,
                    class_=AsyncSession,
                )
                _probe.engine_created(
                    purpose="read", pool_size=settings.pool_max_connections
                )
    return _read_engine


def get_write_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the write sessionmaker, initializing the engine if needed.

    Used by components that open their own short transactions outside the
    request session (e.g. the audit log, which must persist even when the
    request transaction rolls back).
    """
    get_write_engine()
    assert _write_sessionmaker is not None
    return _write_sessionmaker


def get_read_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the read sessionmaker, initializing the engine if needed.

    Used by the tenant directory, which opens one short session per lookup.
    """
    get_read_engine()
    assert _read_sessionmaker is not None
    return _read_sessionmaker


async def get_write_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a write session for mutations (FastAPI dependency).

    The session is configured to NOT auto-commit. Tenant-scoped work opens
    its transaction through ``TenantScope`` so the tenant setting is asserted
    inside that transaction.

    Yields:
        AsyncSession for database operations
    """
    maker = get_write_sessionmaker()

    async with maker() as session:
        yield session


async def get_read_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a read-only session for directory lookups (FastAPI dependency).

    Yields:
        AsyncSession for read-only database operations
    """
    maker = get_read_sessionmaker()

    async with maker() as session:
        yield session


async def close_database_connections() -> None:
    """Close all database engine connections.

    Should be called on application shutdown to properly cleanup connections.
    Also resets sessionmakers to allow reinitialization.
    """
    global _write_engine, _read_engine, _write_sessionmaker, _read_sessionmaker

    if _write_engine is not None:
        await _write_engine.dispose()
        _probe.pool_closed()
        _write_engine = None
        _write_sessionmaker = None

    if _read_engine is not None:
        await _read_engine.dispose()
        _probe.pool_closed()
        _read_engine = None
        _read_sessionmaker = None

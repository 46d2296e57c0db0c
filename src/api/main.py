"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from infrastructure.database.dependencies import (
    close_database_connections,
    get_read_engine,
)
from infrastructure.logging import configure_logging
from infrastructure.settings import get_settings, get_tenancy_settings
from infrastructure.version import __version__
from tenancy import presentation as tenancy_presentation
from tenancy.presentation import admin as tenancy_admin


@asynccontextmanager
async def merenda_lifespan(app: FastAPI):
    """Application lifespan context.

    Manages:
    - Logging configuration
    - Engine lifecycle (created lazily, disposed on shutdown)
    """
    configure_logging()
    yield
    await close_database_connections()


app = FastAPI(
    title=get_settings().app_name,
    description="Multi-tenant context resolution and data isolation",
    version=__version__,
    lifespan=merenda_lifespan,
)

# Tenant routes resolve a tenant for every request.
app.include_router(tenancy_presentation.router)

# System-admin routes live in their own namespace and refuse tenant tokens.
app.include_router(
    tenancy_admin.router,
    prefix=get_tenancy_settings().admin_route_prefix,
)


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/health/db")
async def health_db(
    engine: Annotated[AsyncEngine, Depends(get_read_engine)],
) -> dict:
    """Check database connection health."""
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        return {"status": "ok", "connected": True}
    except Exception as e:
        return {"status": "error", "connected": False, "error": str(e)}

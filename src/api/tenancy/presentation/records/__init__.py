"""Tenant-scoped record routes over the guarded data access layer."""

from tenancy.presentation.records.routes import router

__all__ = ["router"]

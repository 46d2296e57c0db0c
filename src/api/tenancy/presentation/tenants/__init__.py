"""Tenant context routes: the caller's current tenant and their tenants."""

from tenancy.presentation.tenants.routes import router

__all__ = ["router"]

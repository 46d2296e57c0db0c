"""Tenancy presentation layer - aggregate-based organization.

Tenant routes (context, members, records) live under ``/tenants`` and
resolve a tenant for every request. System-admin routes live in ``admin``
and are mounted under their own prefix; the CLI in ``cli`` drives the
lifecycle operations out of band.
"""

from __future__ import annotations

from fastapi import APIRouter

from tenancy.presentation import members, records, tenants

# Each handler declares its own context dependency so ``/tenants/mine``
# can run without a tenant selection.
router = APIRouter(
    prefix="/tenants",
)

router.include_router(tenants.router)
router.include_router(members.router)
router.include_router(records.router)

__all__ = ["router"]

"""Tenancy bounded context.

Owns the System -> Institution -> Tenant -> User hierarchy, per-request
tenant context resolution, tenant-scoped data access enforcement and the
out-of-band tenant lifecycle operations.
"""

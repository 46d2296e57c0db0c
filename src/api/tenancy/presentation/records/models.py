"""Pydantic models for tenant-scoped record access."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RecordsResponse(BaseModel):
    """Rows of one tenant-owned table, all belonging to one tenant."""

    table: str = Field(..., description="Tenant-owned table name")
    tenant_id: str | None = Field(
        None, description="Tenant the rows belong to (None across tenants)"
    )
    records: list[dict[str, Any]] = Field(..., description="Row data")
    count: int = Field(..., description="Number of rows returned")

    @classmethod
    def from_rows(
        cls, table: str, tenant_id: str | None, rows: list[dict[str, Any]]
    ) -> RecordsResponse:
        return cls(table=table, tenant_id=tenant_id, records=rows, count=len(rows))


class RecordResponse(BaseModel):
    """A single tenant-owned row."""

    table: str = Field(..., description="Tenant-owned table name")
    record: dict[str, Any] = Field(..., description="Row data")

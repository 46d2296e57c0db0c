"""Membership management routes for the caller's tenant."""

from tenancy.presentation.members.routes import router

__all__ = ["router"]

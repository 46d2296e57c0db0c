"""System-administrator routes.

Mounted under the configured admin prefix. Every handler resolves a
system-scope context; tenant credentials are refused with 403.
"""

from tenancy.presentation.admin.routes import router

__all__ = ["router"]

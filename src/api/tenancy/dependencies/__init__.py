"""FastAPI dependency wiring for the tenancy bounded context."""

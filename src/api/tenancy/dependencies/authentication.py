"""Identity token dependencies."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from infrastructure.settings import get_auth_settings
from shared_kernel.auth import (
    DefaultIdentityTokenProbe,
    IdentityClaims,
    IdentityTokenVerifier,
    InvalidTokenError,
)

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_token_verifier() -> IdentityTokenVerifier:
    """Get cached identity token verifier configured from AuthSettings."""
    settings = get_auth_settings()
    return IdentityTokenVerifier(
        secret=settings.token_secret.get_secret_value(),
        issuer=settings.issuer,
        audience=settings.audience,
        probe=DefaultIdentityTokenProbe(),
        algorithm=settings.algorithm,
        default_tenant_claim=settings.default_tenant_claim,
        tenants_claim=settings.tenants_claim,
        kind_claim=settings.kind_claim,
    )


async def get_identity_claims(
    verifier: Annotated[IdentityTokenVerifier, Depends(get_token_verifier)],
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ] = None,
) -> IdentityClaims:
    """Verify the bearer token.

    Raises:
        HTTPException 401: If the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return await verifier.verify(credentials.credentials)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

"""Authentication shared kernel module."""

from shared_kernel.auth.observability import (
    DefaultIdentityTokenProbe,
    IdentityTokenProbe,
)
from shared_kernel.auth.token_verifier import (
    IdentityClaims,
    IdentityTokenVerifier,
    InvalidTokenError,
    TokenKind,
)

__all__ = [
    "DefaultIdentityTokenProbe",
    "IdentityClaims",
    "IdentityTokenProbe",
    "IdentityTokenVerifier",
    "InvalidTokenError",
    "TokenKind",
]

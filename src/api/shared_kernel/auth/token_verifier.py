"""Identity token verification.

Verifies signed JWT identity tokens and exposes the claims the tenant
resolver consumes. Tenant-related claims are hints only: the resolver
re-validates them against the directory on every request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError

if TYPE_CHECKING:
    from shared_kernel.auth.observability import IdentityTokenProbe


class TokenKind(StrEnum):
    """Credential namespaces. System admins are not tenant users."""

    USER = "user"
    SYSTEM_ADMIN = "system_admin"


@dataclass(frozen=True)
class IdentityClaims:
    """Verified identity token claims.

    Attributes:
        subject: User id, or system-admin id when kind is SYSTEM_ADMIN.
        kind: Which credential namespace issued the subject.
        default_tenant_id: Tenant the token suggests when no selector is sent.
        tenant_ids: Membership hint embedded at issuance (never authoritative).
    """

    subject: str
    kind: TokenKind = TokenKind.USER
    default_tenant_id: str | None = None
    tenant_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_system_admin(self) -> bool:
        return self.kind == TokenKind.SYSTEM_ADMIN


class InvalidTokenError(Exception):
    """Raised when identity token verification fails."""

    pass


class IdentityTokenVerifier:
    """Verifies (and, for tooling, issues) HS256 identity tokens.

    Validates signature, expiry, issuer and audience before any claim is
    trusted.
    """

    def __init__(
        self,
        secret: str,
        issuer: str,
        audience: str,
        probe: IdentityTokenProbe,
        algorithm: str = "HS256",
        default_tenant_claim: str = "tenant_id",
        tenants_claim: str = "tenants",
        kind_claim: str = "kind",
    ):
        """Initialize the verifier.

        Args:
            secret: Shared signing secret.
            issuer: Expected ``iss`` claim.
            audience: Expected ``aud`` claim.
            probe: Observability probe for logging events.
            algorithm: Signing algorithm (default: HS256).
            default_tenant_claim: Claim holding the default tenant id.
            tenants_claim: Claim holding the membership hint list.
            kind_claim: Claim distinguishing user and system-admin tokens.
        """
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._probe = probe
        self._algorithm = algorithm
        self._default_tenant_claim = default_tenant_claim
        self._tenants_claim = tenants_claim
        self._kind_claim = kind_claim

    async def verify(self, token: str) -> IdentityClaims:
        """Verify a token and return its claims.

        Args:
            token: The encoded JWT.

        Returns:
            IdentityClaims for the verified subject.

        Raises:
            InvalidTokenError: If the token is malformed, expired, wrongly
                signed, or carries unexpected issuer/audience/kind claims.
        """
        try:
            claims = jwt.decode(
                token=token,
                key=self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_iss": True,
                    "verify_exp": True,
                    "require_exp": True,
                    "require_sub": True,
                },
            )
        except ExpiredSignatureError as e:
            self._probe.token_rejected(reason="Token expired")
            raise InvalidTokenError("Token has expired") from e
        except JWTClaimsError as e:
            self._probe.token_rejected(reason=f"Claims error: {e}")
            raise InvalidTokenError(f"Invalid token claims: {e}") from e
        except JWTError as e:
            self._probe.token_rejected(reason=f"JWT error: {e}")
            raise InvalidTokenError(f"Invalid token: {e}") from e

        subject = claims.get("sub")
        if not subject:
            self._probe.token_rejected(reason="Missing sub claim")
            raise InvalidTokenError("Missing required claim: sub")

        raw_kind = claims.get(self._kind_claim, TokenKind.USER.value)
        try:
            kind = TokenKind(raw_kind)
        except ValueError as e:
            self._probe.token_rejected(reason=f"Unknown token kind: {raw_kind}")
            raise InvalidTokenError(f"Unknown token kind: {raw_kind}") from e

        default_tenant = claims.get(self._default_tenant_claim)
        raw_tenants = claims.get(self._tenants_claim) or []
        if not isinstance(raw_tenants, list):
            self._probe.token_rejected(reason="Malformed tenants claim")
            raise InvalidTokenError(f"Claim {self._tenants_claim} must be a list")

        self._probe.token_verified(subject=str(subject), kind=kind.value)

        return IdentityClaims(
            subject=str(subject),
            kind=kind,
            default_tenant_id=str(default_tenant) if default_tenant else None,
            tenant_ids=tuple(str(t) for t in raw_tenants),
        )

    def issue(
        self,
        subject: str,
        kind: TokenKind = TokenKind.USER,
        default_tenant_id: str | None = None,
        tenant_ids: list[str] | None = None,
        expires_in: timedelta = timedelta(hours=1),
    ) -> str:
        """Mint a signed token (tooling and tests; production uses the IdP)."""
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": subject,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_in).timestamp()),
            self._kind_claim: kind.value,
        }
        if default_tenant_id is not None:
            payload[self._default_tenant_claim] = default_tenant_id
        if tenant_ids:
            payload[self._tenants_claim] = list(tenant_ids)

        self._probe.token_issued(subject=subject, kind=kind.value)
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

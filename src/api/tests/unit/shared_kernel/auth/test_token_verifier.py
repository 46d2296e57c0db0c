"""Unit tests for identity token verification."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from jose import jwt

from shared_kernel.auth import (
    IdentityClaims,
    IdentityTokenProbe,
    IdentityTokenVerifier,
    InvalidTokenError,
    TokenKind,
)

SECRET = "unit-test-secret"
ISSUER = "merenda"
AUDIENCE = "merenda-api"


@pytest.fixture
def mock_probe():
    return Mock(spec=IdentityTokenProbe)


@pytest.fixture
def verifier(mock_probe) -> IdentityTokenVerifier:
    return IdentityTokenVerifier(
        secret=SECRET, issuer=ISSUER, audience=AUDIENCE, probe=mock_probe
    )


def _encode(**claims) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "user-ana",
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": int((now + timedelta(minutes=5)).timestamp()),
    }
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


class TestVerify:
    """Tests for IdentityTokenVerifier.verify()."""

    @pytest.mark.asyncio
    async def test_issued_user_token(self, verifier, mock_probe):
        token = verifier.issue(
            "user-ana", default_tenant_id="t-1", tenant_ids=["t-1", "t-2"]
        )

        claims = await verifier.verify(token)

        assert claims == IdentityClaims(
            subject="user-ana",
            kind=TokenKind.USER,
            default_tenant_id="t-1",
            tenant_ids=("t-1", "t-2"),
        )
        assert not claims.is_system_admin
        mock_probe.token_verified.assert_called_once_with(
            subject="user-ana", kind="user"
        )

    @pytest.mark.asyncio
    async def test_system_admin_token(self, verifier):
        token = verifier.issue("admin-root", kind=TokenKind.SYSTEM_ADMIN)

        claims = await verifier.verify(token)

        assert claims.is_system_admin
        assert claims.default_tenant_id is None
        assert claims.tenant_ids == ()

    @pytest.mark.asyncio
    async def test_kind_defaults_to_user(self, verifier):
        claims = await verifier.verify(_encode())

        assert claims.kind == TokenKind.USER

    @pytest.mark.asyncio
    async def test_expired_token(self, verifier, mock_probe):
        token = verifier.issue("user-ana", expires_in=timedelta(minutes=-1))

        with pytest.raises(InvalidTokenError, match="expired"):
            await verifier.verify(token)

        mock_probe.token_rejected.assert_called_once_with(reason="Token expired")

    @pytest.mark.asyncio
    async def test_wrong_audience(self, verifier):
        with pytest.raises(InvalidTokenError):
            await verifier.verify(_encode(aud="another-api"))

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, verifier):
        with pytest.raises(InvalidTokenError):
            await verifier.verify(_encode(iss="someone-else"))

    @pytest.mark.asyncio
    async def test_wrong_signature(self, verifier):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "user-ana",
                "iss": ISSUER,
                "aud": AUDIENCE,
                "exp": int((now + timedelta(minutes=5)).timestamp()),
            },
            "not-the-secret",
            algorithm="HS256",
        )

        with pytest.raises(InvalidTokenError):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_malformed_token(self, verifier, mock_probe):
        with pytest.raises(InvalidTokenError):
            await verifier.verify("not.a.token")

        mock_probe.token_rejected.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_kind(self, verifier):
        with pytest.raises(InvalidTokenError, match="Unknown token kind"):
            await verifier.verify(_encode(kind="superuser"))

    @pytest.mark.asyncio
    async def test_tenants_claim_must_be_a_list(self, verifier):
        with pytest.raises(InvalidTokenError, match="tenants"):
            await verifier.verify(_encode(tenants="t-1"))


class TestCustomClaims:
    @pytest.mark.asyncio
    async def test_configured_claim_names(self, mock_probe):
        verifier = IdentityTokenVerifier(
            secret=SECRET,
            issuer=ISSUER,
            audience=AUDIENCE,
            probe=mock_probe,
            default_tenant_claim="merenda_tenant",
        )

        claims = await verifier.verify(_encode(merenda_tenant="t-9"))

        assert claims.default_tenant_id == "t-9"

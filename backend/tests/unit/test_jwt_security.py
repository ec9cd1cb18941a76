"""
Security Test Suite - JWT Authentication

Tests that the centralized JWT verification in dependencies.py correctly:
- Rejects missing Authorization headers
- Rejects malformed tokens
- Rejects expired tokens
- Rejects tokens with invalid signatures, audiences or issuers
- Accepts properly signed tokens (HS256 secret and mocked JWKS)
"""

import time
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from willcraft.api.dependencies import get_current_user_id
from willcraft.config.settings import Settings
from willcraft.infrastructure.exceptions import WillcraftError

from tests.factories import TEST_ISSUER, TEST_JWT_SECRET


# ---------------------------------------------------------------------------
# Minimal app that uses the real dependency
# ---------------------------------------------------------------------------

test_app = FastAPI()


@test_app.exception_handler(WillcraftError)
async def _error_handler(request: Request, exc: WillcraftError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@test_app.get("/protected")
async def protected_endpoint(user_id: str = Depends(get_current_user_id)):
    return {"user_id": user_id}


client = TestClient(test_app, raise_server_exceptions=False)

USER_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


def claims(**overrides) -> dict:
    payload = {
        "sub": USER_ID,
        "aud": "authenticated",
        "iss": TEST_ISSUER,
        "exp": int(time.time()) + 3600,
    }
    payload.update(overrides)
    return payload


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Tests: rejection scenarios
# ---------------------------------------------------------------------------


class TestJWTRejection:
    """Verify that invalid/missing JWTs are rejected with 401."""

    def test_no_auth_header(self):
        resp = client.get("/protected")
        assert resp.status_code == 401
        assert resp.json()["error"] == "Missing authorization token"

    def test_empty_bearer(self):
        resp = client.get("/protected", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401

    def test_malformed_scheme(self):
        resp = client.get("/protected", headers={"Authorization": "Basic abc123"})
        assert resp.status_code == 401

    def test_garbage_token(self):
        resp = client.get("/protected", headers=bearer("not.a.jwt"))
        assert resp.status_code == 401

    def test_wrong_secret(self):
        token = jwt.encode(claims(), "some-other-secret-of-sufficient-length", algorithm="HS256")
        resp = client.get("/protected", headers=bearer(token))
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid or unverifiable token"

    def test_expired_token_hs256(self):
        """An expired HS256 token (even with correct secret) must be rejected."""
        token = jwt.encode(claims(exp=int(time.time()) - 60), TEST_JWT_SECRET, algorithm="HS256")
        resp = client.get("/protected", headers=bearer(token))
        assert resp.status_code == 401
        assert resp.json()["error"] == "Token has expired"

    @pytest.mark.parametrize("override", [
        {"aud": "anon"},
        {"iss": "https://evil.example"},
    ])
    def test_wrong_audience_or_issuer(self, override):
        token = jwt.encode(claims(**override), TEST_JWT_SECRET, algorithm="HS256")
        resp = client.get("/protected", headers=bearer(token))
        assert resp.status_code == 401

    def test_malformed_subject(self):
        token = jwt.encode(claims(sub="user-42"), TEST_JWT_SECRET, algorithm="HS256")
        resp = client.get("/protected", headers=bearer(token))
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid token: malformed user ID"

    def test_raw_uuid_rejected(self):
        """A bare user id is not a credential."""
        resp = client.get("/protected", headers=bearer(USER_ID))
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Tests: acceptance scenarios (with mocked JWKS / HS256)
# ---------------------------------------------------------------------------


class TestJWTAcceptance:
    """Verify that valid JWTs are accepted."""

    def test_valid_hs256_token(self):
        token = jwt.encode(claims(), TEST_JWT_SECRET, algorithm="HS256")
        resp = client.get("/protected", headers=bearer(token))
        assert resp.status_code == 200
        assert resp.json()["user_id"] == USER_ID

    def test_valid_es256_token_via_jwks(self):
        private_key = ec.generate_private_key(ec.SECP256R1())
        token = jwt.encode(claims(), private_key, algorithm="ES256")

        signing_key = MagicMock()
        signing_key.key = private_key.public_key()
        jwks_client = MagicMock()
        jwks_client.get_signing_key_from_jwt.return_value = signing_key

        settings = Settings(
            _env_file=None,
            auth_issuer=TEST_ISSUER,
            auth_jwks_url="https://auth.willcraft.test/.well-known/jwks.json",
        )

        with patch("willcraft.api.dependencies.get_settings", return_value=settings), \
             patch("willcraft.api.dependencies._get_jwks_client", return_value=jwks_client):
            resp = client.get("/protected", headers=bearer(token))

        assert resp.status_code == 200
        assert resp.json()["user_id"] == USER_ID

    def test_hs256_fallback_when_jwks_rejects(self):
        token = jwt.encode(claims(), TEST_JWT_SECRET, algorithm="HS256")
        jwks_client = MagicMock()
        jwks_client.get_signing_key_from_jwt.side_effect = jwt.exceptions.PyJWKClientError("no kid")

        settings = Settings(
            _env_file=None,
            auth_issuer=TEST_ISSUER,
            auth_jwks_url="https://auth.willcraft.test/.well-known/jwks.json",
            auth_jwt_secret=TEST_JWT_SECRET,
        )

        with patch("willcraft.api.dependencies.get_settings", return_value=settings), \
             patch("willcraft.api.dependencies._get_jwks_client", return_value=jwks_client):
            resp = client.get("/protected", headers=bearer(token))

        assert resp.status_code == 200

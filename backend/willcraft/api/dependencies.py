"""
API Dependencies

FastAPI dependency injection for authentication and common services.

Security: bearer tokens are issued by the external auth provider and
verified cryptographically, via its JWKS endpoint (ES256) when one is
configured, with HS256 fallback via the shared secret. Never decode
without verification.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import jwt
from jwt import PyJWKClient
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from willcraft.config.settings import get_settings
from willcraft.domain.subscription import User
from willcraft.infrastructure.exceptions import AuthenticationError
from willcraft.infrastructure.db.dependencies import UserRepoDep


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# PyJWKClient caches keys internally, one client per process.
_jwks_client: Optional[PyJWKClient] = None


@dataclass(frozen=True)
class Identity:
    """Verified caller identity."""
    user_id: str
    email: Optional[str] = None


def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    """Return a singleton PyJWKClient for the provider's JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_options(issuer: Optional[str]) -> dict:
    required = ["exp", "sub"]
    if issuer:
        required.append("iss")
    return {"require": required}


def _decode_with_jwks(token: str, jwks_url: str, issuer: Optional[str], audience: str) -> dict:
    """Verify JWT using the provider's JWKS endpoint (ES256 asymmetric keys)."""
    client = _get_jwks_client(jwks_url)
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience=audience,
        options=_decode_options(issuer),
    )


def _decode_with_secret(token: str, secret: str, issuer: Optional[str], audience: str) -> dict:
    """Verify JWT using the HS256 shared secret."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience=audience,
        options=_decode_options(issuer),
    )


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Identity:
    """
    Verify the bearer token and return the caller's identity.

    Verification strategy (in order):
      1. JWKS (ES256) when ``AUTH_JWKS_URL`` is set.
      2. HS256 with ``AUTH_JWT_SECRET``.

    Raises:
        AuthenticationError: token missing, expired, or invalid.
    """
    if not credentials:
        raise AuthenticationError("Missing authorization token")

    token = credentials.credentials
    settings = get_settings()
    issuer = settings.auth_issuer
    audience = settings.auth_audience

    payload: Optional[dict] = None

    # --- Strategy 1: JWKS (ES256) ---
    if settings.auth_jwks_url:
        try:
            payload = _decode_with_jwks(token, settings.auth_jwks_url, issuer, audience)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
            logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    # --- Strategy 2: HS256 shared secret ---
    if payload is None and settings.auth_jwt_secret:
        try:
            payload = _decode_with_secret(token, settings.auth_jwt_secret, issuer, audience)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification failed: %s", e)

    if payload is None:
        raise AuthenticationError("Invalid or unverifiable token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token: missing user ID")

    try:
        user_id = str(UUID(str(user_id)))
    except ValueError:
        raise AuthenticationError("Invalid token: malformed user ID")

    email = payload.get("email")
    return Identity(user_id=user_id, email=email if isinstance(email, str) else None)


async def get_current_user_id(identity: Identity = Depends(get_identity)) -> str:
    """Verified user ID (``sub`` claim)."""
    return identity.user_id


async def get_current_user(
    user_repo: UserRepoDep,
    identity: Identity = Depends(get_identity),
) -> User:
    """The caller's local account, provisioned on first access."""
    return await user_repo.ensure(identity.user_id, identity.email)

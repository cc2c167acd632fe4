"""
Tubely Authentication Module

This module provides the credential validation used by every upload endpoint.
Callers authenticate with a bearer JWT signed with HS256 (or another HMAC
algorithm selected in settings) whose ``sub`` claim is the user's UUID:

- ``get_bearer_token`` extracts the token from an Authorization header value
- ``validate_jwt`` verifies signature, expiry and issuer and returns the user id
- ``create_access_token`` issues tokens the validator accepts
- ``get_current_user_id`` is the FastAPI dependency protecting routes

Failures are classified as ``MissingCredentialError`` (no header, wrong scheme,
empty token) or ``InvalidCredentialError`` (malformed, expired, bad signature,
wrong issuer, subject that is not a UUID). Both map to HTTP 401.

Usage:
    ```python
    from fastapi import Depends
    from app.core.auth import get_current_user_id

    @router.post("/protected")
    async def protected_route(user_id: UUID = Depends(get_current_user_id)):
        return {"user_id": str(user_id)}
    ```
"""

import logging

from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import Settings, get_settings
from app.core.errors import InvalidCredentialError, MissingCredentialError


# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Security Scheme
# =============================================================================

# Registers the Bearer scheme in the OpenAPI document. Errors are raised by
# get_current_user_id so missing and invalid credentials stay distinguishable.
security = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token whose subject is the caller's user id.",
    auto_error=False,
)

BEARER_SCHEME = "bearer"


# =============================================================================
# Token Extraction
# =============================================================================


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract the token from an ``Authorization`` header value.

    The scheme is matched case-insensitively. Surrounding whitespace around the
    token is ignored.

    Args:
        authorization: Raw header value, or None when the header is absent.

    Returns:
        str: The bearer token.

    Raises:
        MissingCredentialError: If the header is absent, uses another scheme,
            or carries no token.
    """
    if not authorization or not authorization.strip():
        raise MissingCredentialError("Authorization header is missing")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        raise MissingCredentialError("Authorization header must use the Bearer scheme")

    token = token.strip()
    if not token:
        raise MissingCredentialError("Bearer token is empty")

    return token


# =============================================================================
# Token Issuing and Validation
# =============================================================================


def create_access_token(
    user_id: UUID,
    settings: Settings | None = None,
    expires_in: timedelta | None = None,
) -> str:
    """
    Create an access token for the given user.

    Token claims:
    - iss: ``settings.jwt_issuer``
    - sub: user UUID as a string
    - iat: issued at timestamp
    - exp: ``iat`` plus ``expires_in`` (defaults to ``jwt_expiration_hours``)

    Args:
        user_id: The user's identifier.
        settings: Optional Settings instance. If not provided, uses get_settings().
        expires_in: Optional lifetime override. Negative values produce tokens
            that are already expired, which is useful in tests.

    Returns:
        str: The encoded JWT.
    """
    if settings is None:
        settings = get_settings()

    now = datetime.now(UTC)
    lifetime = expires_in if expires_in is not None else timedelta(hours=settings.jwt_expiration_hours)

    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "iat": now,
        "exp": now + lifetime,
    }

    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    logger.debug("Issued access token for user %s (expires: %s)", user_id, (now + lifetime).isoformat())
    return token


def validate_jwt(token: str, settings: Settings) -> UUID:
    """
    Validate a bearer JWT and resolve it to a user id.

    Args:
        token: The encoded JWT.
        settings: Settings instance containing the signing secret and issuer.

    Returns:
        UUID: The user id from the ``sub`` claim.

    Raises:
        InvalidCredentialError: If the token is malformed, expired, signed with
            another key, issued by someone else, or lacks a UUID subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require_exp": True, "require_sub": True},
        )
    except jwt.ExpiredSignatureError as e:
        logger.info("Rejected expired JWT")
        raise InvalidCredentialError("Token has expired") from e
    except jwt.JWTClaimsError as e:
        logger.info("Rejected JWT with invalid claims: %s", e)
        raise InvalidCredentialError("Invalid token claims") from e
    except JWTError as e:
        logger.info("Rejected invalid JWT: %s", e)
        raise InvalidCredentialError("Invalid token") from e

    try:
        return UUID(str(payload["sub"]))
    except (KeyError, ValueError) as e:
        logger.info("Rejected JWT with non-UUID subject")
        raise InvalidCredentialError("Invalid token subject") from e


# =============================================================================
# Authentication Dependencies
# =============================================================================


async def get_current_user_id(
    request: Request,
    _credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> UUID:
    """
    Resolve the authenticated user id for the current request.

    FastAPI resolves dependencies before the route body runs, so every
    protected handler rejects unauthenticated requests before reading the
    request body or touching any store.

    Raises:
        MissingCredentialError: No usable Authorization header.
        InvalidCredentialError: The token failed validation.
    """
    token = get_bearer_token(request.headers.get("Authorization"))
    user_id = validate_jwt(token, settings)
    logger.debug("Authenticated user %s for %s %s", user_id, request.method, request.url.path)
    return user_id


__all__ = [
    "create_access_token",
    "get_bearer_token",
    "get_current_user_id",
    "security",
    "validate_jwt",
]

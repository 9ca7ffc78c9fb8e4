"""
Tubely Bearer Token Authentication Module

Issues and verifies HS256 access tokens and exposes the FastAPI dependency that
resolves the calling user's id for upload endpoints.

Token claims:
- iss: configured issuer (``tubely-access`` by default)
- sub: the user's UUID
- iat / exp: issue and expiry timestamps

Usage in routes:
    ```python
    from fastapi import Depends
    from tubely.core.auth import get_current_user_id

    @router.post("/video/{video_id}")
    async def upload(video_id: str, user_id: UUID = Depends(get_current_user_id)):
        ...
    ```
"""

import logging

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tubely.config import Settings, get_settings
from tubely.core.errors import InvalidCredentialsError


logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


# =============================================================================
# Security Scheme
# =============================================================================

# auto_error is off so a missing header yields 401 instead of FastAPI's 403
security = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token issued by the Tubely auth service.",
    auto_error=False,
)


# =============================================================================
# Token Functions
# =============================================================================


def create_access_token(
    user_id: UUID,
    settings: Settings | None = None,
    expires_in: timedelta | None = None,
) -> str:
    """
    Create a signed access token for ``user_id``.

    Args:
        user_id: The user's identifier, stored as the ``sub`` claim.
        settings: Optional Settings instance. If not provided, uses get_settings().
        expires_in: Token lifetime. Defaults to ``jwt_expiration_hours``.

    Returns:
        str: The encoded JWT.
    """
    if settings is None:
        settings = get_settings()

    now = datetime.now(UTC)
    expire = now + (expires_in or timedelta(hours=settings.jwt_expiration_hours))

    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "iat": now,
        "exp": expire,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)

    logger.debug("Issued access token for user %s (expires %s)", user_id, expire.isoformat())
    return token


def decode_access_token(token: str, settings: Settings) -> dict[str, Any]:
    """
    Verify signature, expiry and issuer of ``token`` and return its claims.

    Raises:
        InvalidCredentialsError: If the token fails any check.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except jwt.ExpiredSignatureError as e:
        logger.info("Rejected expired access token")
        raise InvalidCredentialsError("Token has expired", stage="auth") from e
    except JWTError as e:
        logger.info("Rejected access token: %s", e)
        raise InvalidCredentialsError("Couldn't validate JWT", stage="auth") from e


def resolve_caller(token: str, settings: Settings) -> UUID:
    """
    Resolve the authenticated user id carried by ``token``.

    Raises:
        InvalidCredentialsError: If the token is invalid or its subject is not a UUID.
    """
    claims = decode_access_token(token, settings)
    try:
        return UUID(str(claims["sub"]))
    except (KeyError, ValueError) as e:
        raise InvalidCredentialsError("Token subject is not a user id", stage="auth") from e


# =============================================================================
# Authentication Dependencies
# =============================================================================


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> UUID:
    """
    FastAPI dependency returning the caller's user id.

    Raises:
        HTTPException: 401 when the header is missing or the token is invalid.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": InvalidCredentialsError.error_code, "message": "Couldn't find JWT"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return resolve_caller(credentials.credentials, settings)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=e.to_detail(),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


__all__ = [
    "JWT_ALGORITHM",
    "create_access_token",
    "decode_access_token",
    "get_current_user_id",
    "resolve_caller",
    "security",
]

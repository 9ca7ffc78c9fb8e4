"""
Tubely Authentication Module Test Suite

Covers token issue and verification in tubely/core/auth.py and the
``get_current_user_id`` FastAPI dependency.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from tubely.config import Settings
from tubely.core.auth import (
    JWT_ALGORITHM,
    create_access_token,
    decode_access_token,
    get_current_user_id,
    resolve_caller,
)
from tubely.core.errors import InvalidCredentialsError


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


@pytest.mark.unit
class TestAccessTokens:
    def test_round_trip(self, test_settings: Settings, owner_id: UUID) -> None:
        token = create_access_token(owner_id, test_settings)
        assert resolve_caller(token, test_settings) == owner_id

    def test_claims(self, test_settings: Settings, owner_id: UUID) -> None:
        claims = decode_access_token(create_access_token(owner_id, test_settings), test_settings)

        assert claims["iss"] == "tubely-access"
        assert claims["sub"] == str(owner_id)
        assert claims["exp"] > claims["iat"]

    def test_expired(self, test_settings: Settings, owner_id: UUID) -> None:
        token = create_access_token(owner_id, test_settings, expires_in=timedelta(seconds=-5))
        with pytest.raises(InvalidCredentialsError) as exc_info:
            resolve_caller(token, test_settings)
        assert exc_info.value.status_code == 401

    def test_wrong_secret(self, test_settings: Settings, owner_id: UUID) -> None:
        other = test_settings.model_copy(update={"jwt_secret": "x" * 40})
        token = create_access_token(owner_id, other)
        with pytest.raises(InvalidCredentialsError):
            resolve_caller(token, test_settings)

    def test_wrong_issuer(self, test_settings: Settings, owner_id: UUID) -> None:
        other = test_settings.model_copy(update={"jwt_issuer": "someone-else"})
        token = create_access_token(owner_id, other)
        with pytest.raises(InvalidCredentialsError):
            resolve_caller(token, test_settings)

    def test_subject_must_be_uuid(self, test_settings: Settings) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {"iss": "tubely-access", "sub": "admin", "iat": now, "exp": now + timedelta(hours=1)},
            test_settings.jwt_secret,
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(InvalidCredentialsError):
            resolve_caller(token, test_settings)

    def test_garbage_token(self, test_settings: Settings) -> None:
        with pytest.raises(InvalidCredentialsError):
            resolve_caller("not.a.jwt", test_settings)


@pytest.mark.unit
class TestGetCurrentUserId:
    @pytest.mark.asyncio
    async def test_valid_token(self, test_settings: Settings, owner_id: UUID) -> None:
        token = create_access_token(owner_id, test_settings)
        assert await get_current_user_id(bearer(token), test_settings) == owner_id

    @pytest.mark.asyncio
    async def test_missing_credentials(self, test_settings: Settings) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user_id(None, test_settings)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    @pytest.mark.asyncio
    async def test_invalid_token(self, test_settings: Settings) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user_id(bearer("nope"), test_settings)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["error"] == "invalid_credentials"


@pytest.mark.unit
class TestUploadEndpointAuth:
    def test_missing_header_is_401(self, client) -> None:
        response = client.post(
            f"/api/v1/upload/video/{uuid4()}",
            files={"video": ("clip.mp4", b"x", "video/mp4")},
        )
        assert response.status_code == 401

    def test_malformed_header_is_401(self, client) -> None:
        response = client.post(
            f"/api/v1/upload/thumbnail/{uuid4()}",
            headers={"Authorization": "Bearer garbage"},
            files={"thumbnail": ("t.png", b"x", "image/png")},
        )
        assert response.status_code == 401

"""Unit tests for user service (mocked DB)."""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from jose import jwt

from src.bp_common.errors import (
    AccountDisabledError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
)
from src.bp_gateway.auth.jwt_handler import create_access_token, create_refresh_token
from src.bp_gateway.user.db_models import UserModel
from src.bp_gateway.user.service import UserService


def _make_user(is_active: bool = True, role: str = "investor") -> UserModel:
    user = UserModel()
    user.id = uuid.uuid4()
    user.username = "alice"
    user.email = "alice@example.com"
    user.password_hash = "$2b$12$fakehash"
    user.role = role
    user.is_active = is_active
    return user


def _db_returning(user: UserModel | None) -> AsyncMock:
    mock_result = MagicMock()
    mock_result.scalar_one_or_none.return_value = user
    db = AsyncMock()
    db.execute = AsyncMock(return_value=mock_result)
    return db


@pytest.fixture
def service() -> UserService:
    return UserService()


class TestLogin:
    async def test_unknown_username_raises_credentials_error(self, service: UserService) -> None:
        with pytest.raises(InvalidCredentialsError):
            await service.login("nobody", "Pass1word", _db_returning(None))

    async def test_wrong_password_raises_credentials_error(self, service: UserService) -> None:
        with (
            patch("src.bp_gateway.user.service.verify_password", return_value=False),
            pytest.raises(InvalidCredentialsError),
        ):
            await service.login("alice", "WrongPass1", _db_returning(_make_user()))

    async def test_disabled_account_raises_error(self, service: UserService) -> None:
        with (
            patch("src.bp_gateway.user.service.verify_password", return_value=True),
            pytest.raises(AccountDisabledError),
        ):
            await service.login("alice", "Pass1word", _db_returning(_make_user(is_active=False)))

    async def test_success_returns_token_pair_with_role(self, service: UserService) -> None:
        user = _make_user(role="admin")

        with patch("src.bp_gateway.user.service.verify_password", return_value=True):
            returned_user, access, refresh = await service.login(
                "alice", "Pass1word", _db_returning(user)
            )

        assert returned_user is user
        assert access != refresh
        claims = jwt.get_unverified_claims(access)
        assert claims["sub"] == str(user.id)
        assert claims["role"] == "admin"


class TestRefresh:
    async def test_invalid_refresh_token_raises_error(self, service: UserService) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh("not.a.real.token")

    async def test_access_token_used_as_refresh_raises_error(self, service: UserService) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh(create_access_token("user-123"))

    async def test_refresh_issues_access_token_for_same_subject(
        self, service: UserService
    ) -> None:
        access = await service.refresh(create_refresh_token("user-123"))

        claims = jwt.get_unverified_claims(access)
        assert claims["sub"] == "user-123"
        assert claims["type"] == "access"

"""Session service: login and refresh.

Read-only against the users table; no transaction needed.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.errors import AccountDisabledError, InvalidCredentialsError
from src.bp_gateway.auth.jwt_handler import (
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from src.bp_gateway.auth.password import verify_password
from src.bp_gateway.user.db_models import UserModel


class UserService:
    """Stateless service — instantiate once, reuse across requests."""

    async def login(
        self,
        username: str,
        password: str,
        db: AsyncSession,
    ) -> tuple[UserModel, str, str]:
        """Authenticate and return (user, access_token, refresh_token).

        "User not found" and "Wrong password" both raise InvalidCredentialsError
        to prevent username enumeration.
        """
        result = await db.execute(select(UserModel).where(UserModel.username == username))
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        if not user.is_active:
            raise AccountDisabledError()

        return (
            user,
            create_access_token(str(user.id), role=user.role),
            create_refresh_token(str(user.id)),
        )

    async def refresh(self, refresh_token: str) -> str:
        """Validate refresh token and return a new access token."""
        claims = decode_token(refresh_token, expected_type=REFRESH)
        return create_access_token(claims.subject)

"""FastAPI auth dependencies.

    get_current_user    — any authenticated session (JWT Bearer)
    require_admin       — operator session with the admin role
    verify_cron_secret  — scheduler calls, shared secret as Bearer credential

Usage:
    @router.post("/run")
    async def run(admin: UserModel = Depends(require_admin)): ...
"""

import hmac
import logging
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer, OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_common.database import get_db_session
from src.bp_common.errors import (
    AccountDisabledError,
    AdminRequiredError,
    ConfigurationError,
    InvalidCredentialsError,
    InvalidSchedulerCredentialError,
)
from src.bp_gateway.auth.jwt_handler import ACCESS, decode_token
from src.bp_gateway.user.db_models import UserModel

logger = logging.getLogger(__name__)

# tokenUrl tells Swagger UI where to get a token (used for the "Authorize" button)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
cron_bearer = HTTPBearer(auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> UserModel:
    """Extract and validate the JWT Bearer token, return the UserModel.

    Raises HTTP 401 if the token is missing, invalid, or expired, or if its
    subject is not a UUID. Raises AccountDisabledError for disabled users.
    """
    try:
        claims = decode_token(token, expected_type=ACCESS)
        user_id = uuid.UUID(claims.subject)
    except (InvalidCredentialsError, ValueError):
        raise _CREDENTIALS_EXCEPTION from None

    result = await db.execute(select(UserModel).where(UserModel.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _CREDENTIALS_EXCEPTION

    if not user.is_active:
        raise AccountDisabledError()

    return user


async def require_admin(
    current_user: UserModel = Depends(get_current_user),
) -> UserModel:
    """Reject any session whose stored role is not admin (HTTP 403)."""
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(cron_bearer),
) -> None:
    """Authenticate a scheduled trigger before any work begins.

    A missing CRON_SECRET is a configuration error, not an auth failure:
    the request is rejected with 500 so the misconfiguration is visible.
    """
    expected = settings.CRON_SECRET
    if not expected:
        logger.error("Scheduled distribution rejected: CRON_SECRET is not configured")
        raise ConfigurationError("CRON_SECRET is not set")

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidSchedulerCredentialError()
    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise InvalidSchedulerCredentialError()

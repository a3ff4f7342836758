"""Session endpoints: login, refresh, and the caller's own identity.

There is no registration endpoint; investor and operator accounts are
provisioned by the wider platform.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, respond
from src.bp_gateway.auth.dependencies import get_current_user
from src.bp_gateway.user.db_models import UserModel
from src.bp_gateway.user.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RefreshResponse,
    UserInfo,
)
from src.bp_gateway.user.service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])
_service = UserService()

_EXPIRES_IN = settings.JWT_EXPIRE_MINUTES * 60


@router.post("/login", response_model=ApiResponse, summary="Login")
async def login(
    request: Request,
    body: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    user, access_token, refresh_token = await _service.login(body.username, body.password, db)
    data = LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=_EXPIRES_IN,
        user=UserInfo.from_model(user),
    )
    return respond(request, data.model_dump(), message="Login successful")


@router.post("/refresh", response_model=ApiResponse, summary="Refresh access token")
async def refresh_token(request: Request, body: RefreshRequest) -> ApiResponse:
    access_token = await _service.refresh(body.refresh_token)
    data = RefreshResponse(access_token=access_token, expires_in=_EXPIRES_IN)
    return respond(request, data.model_dump(), message="Token refreshed")


@router.get("/me", response_model=ApiResponse, summary="Current session")
async def me(
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
) -> ApiResponse:
    return respond(request, UserInfo.from_model(current_user).model_dump())

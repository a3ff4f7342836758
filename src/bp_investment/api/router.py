"""bp_investment REST API — open and inspect the caller's own positions."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, respond
from src.bp_distribution.domain.models import PositionStatus
from src.bp_gateway.auth.dependencies import get_current_user
from src.bp_gateway.user.db_models import UserModel
from src.bp_investment.application.schemas import OpenPositionRequest
from src.bp_investment.application.service import InvestmentService

router = APIRouter(prefix="/positions", tags=["positions"])

_service = InvestmentService()

CurrentUser = Annotated[UserModel, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def open_position(
    body: OpenPositionRequest,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.open_position(
        db, str(current_user.id), str(body.plan_id), body.amount_cents
    )
    return respond(request, data.model_dump(), message="Position opened")


@router.get("")
async def list_positions(
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
    position_status: PositionStatus | None = Query(None, alias="status"),
) -> ApiResponse:
    data = await _service.list_positions(db, str(current_user.id), position_status)
    return respond(request, data.model_dump())


@router.get("/{position_id}/accruals")
async def list_accruals(
    position_id: uuid.UUID,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.list_accruals(db, str(current_user.id), str(position_id))
    return respond(request, data.model_dump())

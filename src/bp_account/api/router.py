"""bp_account REST API — the caller's own balance and transaction journal."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_account.application.service import AccountApplicationService
from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, respond
from src.bp_gateway.auth.dependencies import get_current_user
from src.bp_gateway.user.db_models import UserModel

router = APIRouter(prefix="/account", tags=["account"])

_service = AccountApplicationService()

CurrentUser = Annotated[UserModel, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/balance")
async def get_balance(current_user: CurrentUser, db: DbSession, request: Request) -> ApiResponse:
    data = await _service.get_balance(db, str(current_user.id))
    return respond(request, data.model_dump())


@router.get("/transactions")
async def list_transactions(
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
    cursor: str | None = Query(None, description="Opaque cursor from the previous page"),
    limit: int = Query(20, ge=1, le=100),
    tx_type: str | None = Query(None, description="Filter by TransactionType value"),
) -> ApiResponse:
    data = await _service.list_transactions(db, str(current_user.id), cursor, limit, tx_type)
    return respond(request, data.model_dump())

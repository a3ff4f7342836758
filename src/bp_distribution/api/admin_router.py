"""Operator endpoints: gated manual runs, monitoring, targeted lifecycle actions.

Every route requires an admin session (require_admin).
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.bp_common.database import get_db_session, get_session_factory
from src.bp_common.enums import ProductType, parse_product_type
from src.bp_common.errors import UnknownProductTypeError
from src.bp_common.response import ApiResponse, respond
from src.bp_distribution.application.service import DistributionApplicationService
from src.bp_gateway.auth.dependencies import require_admin

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)

_service = DistributionApplicationService()

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def _product(product: str) -> ProductType:
    try:
        return parse_product_type(product)
    except ValueError:
        raise UnknownProductTypeError(product) from None


@router.get("/distributions/{product}/readiness")
async def get_readiness(product: str, request: Request, db: DbSession) -> ApiResponse:
    data = await _service.get_readiness(db, _product(product))
    return respond(request, data.model_dump())


@router.post("/distributions/{product}/run")
async def run_distribution(
    product: str,
    request: Request,
    db: DbSession,
    session_factory: SessionFactory,
) -> ApiResponse:
    data = await _service.run_manual(db, session_factory, _product(product))
    return respond(request, data.model_dump(), message=data.message)


@router.get("/positions/progress")
async def list_progress(
    request: Request,
    db: DbSession,
    product_type: ProductType | None = Query(None, description="standard | live_trade"),
) -> ApiResponse:
    data = await _service.list_progress(db, product_type)
    return respond(request, data.model_dump())


@router.get("/positions/stats")
async def get_stats(
    request: Request,
    db: DbSession,
    product_type: ProductType | None = Query(None, description="standard | live_trade"),
) -> ApiResponse:
    data = await _service.get_stats(db, product_type)
    return respond(request, data.model_dump())


@router.post("/positions/{position_id}/force-complete")
async def force_complete(position_id: uuid.UUID, request: Request, db: DbSession) -> ApiResponse:
    data = await _service.force_complete(db, str(position_id))
    return respond(request, data.model_dump(), message=f"Position {data.position.status}")


@router.post("/positions/{position_id}/deactivate")
async def deactivate(position_id: uuid.UUID, request: Request, db: DbSession) -> ApiResponse:
    data = await _service.deactivate(db, str(position_id))
    return respond(request, data.model_dump(), message="Position deactivated")


@router.delete("/positions/{position_id}")
async def delete_position(position_id: uuid.UUID, request: Request, db: DbSession) -> ApiResponse:
    data = await _service.delete(db, str(position_id))
    return respond(request, data.model_dump(), message="Position deleted")

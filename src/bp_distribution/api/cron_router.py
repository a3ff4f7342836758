"""Scheduler-facing trigger endpoints.

Authenticated with the shared CRON_SECRET as a Bearer credential; no
Readiness Gate (the scheduler spaces calls itself). Typical schedule:
standard once a day, live-trade once an hour.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.bp_common.database import get_session_factory
from src.bp_common.enums import ProductType
from src.bp_common.response import ApiResponse, respond
from src.bp_distribution.application.service import DistributionApplicationService
from src.bp_gateway.auth.dependencies import verify_cron_secret

router = APIRouter(
    prefix="/cron/distributions",
    tags=["distribution"],
    dependencies=[Depends(verify_cron_secret)],
)

_service = DistributionApplicationService()

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


async def _run(
    request: Request, session_factory: SessionFactory, product: ProductType
) -> ApiResponse:
    data = await _service.run_scheduled(session_factory, product)
    return respond(request, data.model_dump(), message="Distribution completed")


@router.post("/standard")
async def run_standard(request: Request, session_factory: SessionFactory) -> ApiResponse:
    return await _run(request, session_factory, ProductType.STANDARD)


@router.post("/live-trade")
async def run_live_trade(request: Request, session_factory: SessionFactory) -> ApiResponse:
    return await _run(request, session_factory, ProductType.LIVE_TRADE)

"""DistributionApplicationService — entry points behind the cron and admin routers.

Scheduled runs go straight to the Orchestrator. Manual runs pass the
Readiness Gate first and return its verdict alongside the summary; a run
that cannot even list its positions hands the gate slot back.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.bp_common.database import transaction_scope
from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import ProductType
from src.bp_common.errors import DistributionUnavailableError
from src.bp_distribution.application.lifecycle import LifecycleAdvancer
from src.bp_distribution.application.orchestrator import DistributionOrchestrator
from src.bp_distribution.application.readiness import ReadinessGate
from src.bp_distribution.application.schemas import (
    DistributionStatsResponse,
    DistributionSummaryResponse,
    ManualRunResponse,
    PositionProgressItem,
    PositionProgressListResponse,
    ReadinessResponse,
    TerminationResponse,
)
from src.bp_distribution.domain.models import Position, PositionProgress, ReadinessStatus
from src.bp_distribution.domain.periods import elapsed_periods, next_period_instant
from src.bp_distribution.domain.repository import PositionRepositoryProtocol
from src.bp_distribution.infrastructure.persistence import PositionRepository

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_PERCENT_STEP = Decimal("0.01")


def build_progress(position: Position, periods_paid: int, now: datetime) -> PositionProgress:
    elapsed = min(
        elapsed_periods(position.start_at, position.period, now), position.duration_periods
    )
    if position.duration_periods:
        percent = (Decimal(elapsed) * _HUNDRED / Decimal(position.duration_periods)).quantize(
            _PERCENT_STEP
        )
    else:
        percent = _HUNDRED.quantize(_PERCENT_STEP)
    return PositionProgress(
        position=position,
        periods_elapsed=elapsed,
        periods_paid=periods_paid,
        periods_remaining=position.duration_periods - elapsed,
        scheduled_end=position.scheduled_end,
        next_period_at=next_period_instant(
            position.start_at, position.period, position.duration_periods, now
        ),
        progress_percent=percent,
        is_expired=elapsed >= position.duration_periods,
    )


class DistributionApplicationService:
    def __init__(
        self,
        position_repo: PositionRepositoryProtocol | None = None,
        advancer: LifecycleAdvancer | None = None,
        gate: ReadinessGate | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._positions: PositionRepositoryProtocol = position_repo or PositionRepository()
        self._advancer = advancer or LifecycleAdvancer(self._positions)
        self._gate = gate or ReadinessGate()
        self._clock = clock

    def _orchestrator(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> DistributionOrchestrator:
        return DistributionOrchestrator(
            session_factory,
            position_repo=self._positions,
            advancer=self._advancer,
            clock=self._clock,
        )

    async def run_scheduled(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        product_type: ProductType,
    ) -> DistributionSummaryResponse:
        summary = await self._orchestrator(session_factory).run(product_type, self._clock())
        return DistributionSummaryResponse.from_domain(summary)

    async def run_manual(
        self,
        db: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        product_type: ProductType,
    ) -> ManualRunResponse:
        now = self._clock()
        status = await self._gate.try_acquire(db, product_type, now)
        if not status.ready:
            return ManualRunResponse(
                started=False,
                message=f"Distribution on cooldown: {status.remaining_formatted}",
                readiness=ReadinessResponse.from_domain(status),
            )

        logger.info("Manual %s distribution accepted", product_type.value)
        try:
            summary = await self._orchestrator(session_factory).run(product_type, now)
        except DistributionUnavailableError:
            await self._release_slot(db, status)
            raise
        # The run itself consumed the slot, so report the gate as of after the run
        after = await self._gate.status(db, product_type, self._clock())
        return ManualRunResponse(
            started=True,
            message="Distribution completed",
            readiness=ReadinessResponse.from_domain(after),
            summary=DistributionSummaryResponse.from_domain(summary),
        )

    async def _release_slot(self, db: AsyncSession, acquired: ReadinessStatus) -> None:
        try:
            await self._gate.release(db, acquired)
        except SQLAlchemyError:
            # Store still down: the slot stays taken until the cooldown lapses
            logger.exception(
                "Cannot release manual %s distribution slot", acquired.product_type.value
            )

    async def get_readiness(self, db: AsyncSession, product_type: ProductType) -> ReadinessResponse:
        status = await self._gate.status(db, product_type, self._clock())
        return ReadinessResponse.from_domain(status)

    async def list_progress(
        self, db: AsyncSession, product_type: ProductType | None
    ) -> PositionProgressListResponse:
        now = self._clock()
        async with transaction_scope(db):
            rows = await self._positions.list_open_positions_with_paid_counts(db, product_type)
        items = [PositionProgressItem.from_domain(build_progress(p, paid, now)) for p, paid in rows]
        return PositionProgressListResponse(items=items, total=len(items))

    async def get_stats(
        self, db: AsyncSession, product_type: ProductType | None
    ) -> DistributionStatsResponse:
        now = self._clock()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        async with transaction_scope(db):
            stats = await self._positions.get_stats(db, product_type, day_start)
        return DistributionStatsResponse.from_domain(stats)

    async def force_complete(self, db: AsyncSession, position_id: str) -> TerminationResponse:
        result = await self._advancer.force_complete(db, position_id, self._clock())
        return TerminationResponse.from_domain(result)

    async def deactivate(self, db: AsyncSession, position_id: str) -> TerminationResponse:
        result = await self._advancer.deactivate(db, position_id, self._clock())
        return TerminationResponse.from_domain(result)

    async def delete(self, db: AsyncSession, position_id: str) -> TerminationResponse:
        result = await self._advancer.delete(db, position_id, self._clock())
        return TerminationResponse.from_domain(result)

"""Distribution Orchestrator — one run over every eligible position of a product.

Each position is handled by its own worker with its own session, bounded by
a semaphore. A failing position is logged, counted and left for the next run;
it never aborts the batch. The only whole-run failure is not being able to
list eligible positions at all (DistributionUnavailableError).

"now" is captured once per run so every position is judged against the same
instant.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from src.bp_common.database import transaction_scope
from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import ProductType
from src.bp_common.errors import AccrualFailedError, DistributionUnavailableError
from src.bp_distribution.application.lifecycle import LifecycleAdvancer
from src.bp_distribution.domain.models import (
    DistributionSummary,
    Position,
    PositionRunResult,
)
from src.bp_distribution.domain.repository import PositionRepositoryProtocol
from src.bp_distribution.infrastructure.persistence import PositionRepository

logger = logging.getLogger(__name__)


class DistributionOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        position_repo: PositionRepositoryProtocol | None = None,
        advancer: LifecycleAdvancer | None = None,
        concurrency: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._positions: PositionRepositoryProtocol = position_repo or PositionRepository()
        self._advancer = advancer or LifecycleAdvancer(self._positions)
        self._concurrency = max(1, concurrency or settings.DISTRIBUTION_CONCURRENCY)
        self._clock = clock

    async def run(
        self,
        product_type: ProductType,
        now: datetime | None = None,
    ) -> DistributionSummary:
        now = now or self._clock()
        summary = DistributionSummary(product_type=product_type, timestamp=now)
        logger.info("Distribution run started: product=%s now=%s", product_type.value, now)

        positions = await self._load_eligible(product_type)
        semaphore = asyncio.Semaphore(self._concurrency)
        outcomes = await asyncio.gather(
            *(self._run_position(semaphore, position, now) for position in positions)
        )

        for position, (result, failed) in zip(positions, outcomes):
            if failed:
                summary.add_failure(position.id, result)
            else:
                summary.add(result)

        logger.info(
            "Distribution run finished: product=%s processed=%d skipped=%d errors=%d "
            "completed=%d periods_credited=%d amount_cents=%d",
            product_type.value,
            summary.processed,
            summary.skipped,
            summary.errors,
            summary.completed,
            summary.periods_credited,
            summary.amount_credited_cents,
        )
        return summary

    async def _load_eligible(self, product_type: ProductType) -> list[Position]:
        try:
            async with self._session_factory() as db:
                async with transaction_scope(db):
                    return await self._positions.list_eligible_positions(db, product_type)
        except SQLAlchemyError as exc:
            logger.exception("Cannot list eligible %s positions", product_type.value)
            raise DistributionUnavailableError(str(exc)) from exc

    async def _run_position(
        self,
        semaphore: asyncio.Semaphore,
        position: Position,
        now: datetime,
    ) -> tuple[PositionRunResult, bool]:
        result = PositionRunResult(position.id)
        async with semaphore:
            try:
                async with self._session_factory() as db:
                    await self._advancer.advance(db, position, now, result)
            except AccrualFailedError as exc:
                logger.exception(
                    "Accrual failed: position=%s period=%d", exc.position_id, exc.period_index
                )
                return result, True
            except Exception:
                # Isolation: any failure stays with this position
                logger.exception("Position %s failed during distribution", position.id)
                return result, True
        return result, False

"""Distribution Guard — the exactly-once gate for (position, period).

An existing accrual record is the expected skip case, never an error. The
in-transaction check narrows the race window; the UNIQUE key on
accrual_records closes it.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_distribution.domain.repository import PositionRepositoryProtocol
from src.bp_distribution.infrastructure.persistence import PositionRepository


class DistributionGuard:
    def __init__(self, repo: PositionRepositoryProtocol | None = None) -> None:
        self._repo: PositionRepositoryProtocol = repo or PositionRepository()

    async def paid_periods(self, db: AsyncSession, position_id: str) -> set[int]:
        """Pre-filter for a pass. Advisory only: re-checked inside each unit."""
        return await self._repo.list_paid_periods(db, position_id)

    async def is_paid(self, db: AsyncSession, position_id: str, period_index: int) -> bool:
        return await self._repo.accrual_exists(db, position_id, period_index)

"""Repository Protocols — dependency inversion for testability.

Unit tests inject an in-memory double that conforms to these Protocols.
Infrastructure layer provides the PostgreSQL implementation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.enums import ProductType
from src.bp_distribution.domain.models import (
    AccrualRecord,
    DistributionStats,
    Position,
    PositionStatus,
)


class PositionRepositoryProtocol(Protocol):
    async def get_position(
        self,
        db: AsyncSession,
        position_id: str,
        for_update: bool = False,
    ) -> Position | None: ...

    async def list_eligible_positions(
        self,
        db: AsyncSession,
        product_type: ProductType,
    ) -> list[Position]: ...

    async def list_user_positions(
        self,
        db: AsyncSession,
        user_id: str,
        status: PositionStatus | None,
    ) -> list[Position]: ...

    async def insert_position(
        self,
        db: AsyncSession,
        user_id: str,
        plan_id: str,
        product_type: ProductType,
        principal: int,
        period_profit_rate: Decimal,
        duration_periods: int,
        start_at: datetime,
    ) -> Position: ...

    async def list_paid_periods(self, db: AsyncSession, position_id: str) -> set[int]: ...

    async def accrual_exists(
        self, db: AsyncSession, position_id: str, period_index: int
    ) -> bool: ...

    async def insert_accrual(
        self,
        db: AsyncSession,
        position_id: str,
        period_index: int,
        amount: int,
        period_at: datetime,
    ) -> AccrualRecord | None:
        """None when (position_id, period_index) already exists."""
        ...

    async def add_cumulative_profit(
        self, db: AsyncSession, position_id: str, amount: int
    ) -> None: ...

    async def transition_status(
        self,
        db: AsyncSession,
        position_id: str,
        sources: tuple[PositionStatus, ...],
        target: PositionStatus,
        end_at: datetime | None,
    ) -> Position | None:
        """Conditional update; None when the row is no longer in any source state."""
        ...

    async def count_accruals(self, db: AsyncSession, position_id: str) -> int: ...

    async def list_accruals(self, db: AsyncSession, position_id: str) -> list[AccrualRecord]: ...

    async def list_open_positions_with_paid_counts(
        self,
        db: AsyncSession,
        product_type: ProductType | None,
    ) -> list[tuple[Position, int]]: ...

    async def get_stats(
        self,
        db: AsyncSession,
        product_type: ProductType | None,
        day_start: datetime,
    ) -> DistributionStats: ...


class SystemSettingRepositoryProtocol(Protocol):
    async def get_value(self, db: AsyncSession, key: str) -> str | None: ...

    async def try_stamp(
        self,
        db: AsyncSession,
        key: str,
        now: datetime,
        not_after: datetime,
    ) -> bool:
        """Write now under key unless the stored timestamp is later than not_after."""
        ...

    async def restore_stamp(
        self,
        db: AsyncSession,
        key: str,
        stamped: datetime,
        previous: datetime | None,
    ) -> bool:
        """Put previous back (or drop the key) if key still holds stamped."""
        ...

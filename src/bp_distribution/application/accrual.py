"""Accrual Executor — credits one (position, period) as one atomic unit.

Inside a single transaction_scope:
    (a) lock the position row and re-check the Distribution Guard
    (b) insert the accrual record
    (c) increment the position's cumulative profit
    (d) credit the owner's profit sub-balance
    (e) append the profit transaction referencing the position

Any storage or ledger failure rolls back all of it and surfaces as AccrualFailedError
tagged with the position id and period index.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_account.domain.repository import AccountRepositoryProtocol
from src.bp_account.infrastructure.persistence import AccountRepository
from src.bp_common.database import transaction_scope
from src.bp_common.enums import BalanceOp, SubBalance
from src.bp_common.errors import AccrualFailedError, AppError
from src.bp_common.money import apply_rate, cents_to_display
from src.bp_distribution.application.guard import DistributionGuard
from src.bp_distribution.domain.models import AccrualOutcome, AccrualResult, Position
from src.bp_distribution.domain.periods import period_instant
from src.bp_distribution.domain.repository import PositionRepositoryProtocol
from src.bp_distribution.infrastructure.persistence import PositionRepository

logger = logging.getLogger(__name__)


class AccrualExecutor:
    def __init__(
        self,
        position_repo: PositionRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        guard: DistributionGuard | None = None,
    ) -> None:
        self._positions: PositionRepositoryProtocol = position_repo or PositionRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._guard = guard or DistributionGuard(self._positions)

    async def credit_period(
        self,
        db: AsyncSession,
        position: Position,
        period_index: int,
    ) -> AccrualResult:
        amount = apply_rate(position.principal, position.period_profit_rate)
        try:
            async with transaction_scope(db):
                current = await self._positions.get_position(db, position.id, for_update=True)
                if current is None or not current.status.is_eligible:
                    logger.debug(
                        "Position %s no longer eligible, period %d not credited",
                        position.id,
                        period_index,
                    )
                    return AccrualResult(position.id, period_index, AccrualOutcome.INELIGIBLE)

                if await self._guard.is_paid(db, position.id, period_index):
                    logger.debug("Period %d of %s already paid", period_index, position.id)
                    return AccrualResult(position.id, period_index, AccrualOutcome.ALREADY_PAID)

                record = await self._positions.insert_accrual(
                    db,
                    position.id,
                    period_index,
                    amount,
                    period_instant(position.start_at, position.period, period_index),
                )
                if record is None:
                    # Lost the race to a concurrent run at the unique key
                    logger.debug("Period %d of %s taken concurrently", period_index, position.id)
                    return AccrualResult(position.id, period_index, AccrualOutcome.ALREADY_PAID)

                await self._positions.add_cumulative_profit(db, position.id, amount)
                await self._accounts.update_balance(
                    db, position.user_id, SubBalance.PROFIT, amount, BalanceOp.ADD
                )
                await self._accounts.append_transaction(
                    db,
                    user_id=position.user_id,
                    tx_type=position.product_type.profit_tx_type,
                    amount=amount,
                    sub_balance=SubBalance.PROFIT,
                    description=(
                        f"Period {period_index}/{position.duration_periods} profit "
                        f"{cents_to_display(amount)}"
                    ),
                    reference_type="position",
                    reference_id=position.id,
                )
        except SQLAlchemyError as exc:
            raise AccrualFailedError(position.id, period_index, str(exc)) from exc
        except AppError as exc:
            raise AccrualFailedError(position.id, period_index, exc.message) from exc

        logger.debug(
            "Credited period %d of %s: %s", period_index, position.id, cents_to_display(amount)
        )
        return AccrualResult(position.id, period_index, AccrualOutcome.CREDITED, amount)

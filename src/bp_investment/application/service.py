"""InvestmentService — position opening and the investor's read side.

open_position is one atomic unit: deposit debit, position insert,
investment transaction and referral commission commit together or not at all.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_account.domain.repository import AccountRepositoryProtocol
from src.bp_account.infrastructure.persistence import AccountRepository
from src.bp_common.database import transaction_scope
from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import BalanceOp, SubBalance
from src.bp_common.errors import (
    InvestmentAmountOutOfRangeError,
    PlanNotActiveError,
    PlanNotFoundError,
    PositionNotFoundError,
)
from src.bp_common.money import cents_to_display
from src.bp_distribution.application.schemas import AccrualItem, PositionResponse
from src.bp_distribution.domain.models import PositionStatus
from src.bp_distribution.domain.repository import PositionRepositoryProtocol
from src.bp_distribution.infrastructure.persistence import PositionRepository
from src.bp_investment.application.referral import ReferralCommissionService
from src.bp_investment.application.schemas import (
    AccrualListResponse,
    OpenPositionResponse,
    PositionListResponse,
)
from src.bp_investment.domain.repository import PlanRepositoryProtocol
from src.bp_investment.infrastructure.persistence import PlanRepository

logger = logging.getLogger(__name__)


class InvestmentService:
    def __init__(
        self,
        plan_repo: PlanRepositoryProtocol | None = None,
        position_repo: PositionRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        referrals: ReferralCommissionService | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._plans: PlanRepositoryProtocol = plan_repo or PlanRepository()
        self._positions: PositionRepositoryProtocol = position_repo or PositionRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._referrals = referrals or ReferralCommissionService(account_repo=self._accounts)
        self._clock = clock

    async def open_position(
        self,
        db: AsyncSession,
        user_id: str,
        plan_id: str,
        amount: int,
    ) -> OpenPositionResponse:
        async with transaction_scope(db):
            plan = await self._plans.get_plan(db, plan_id)
            if plan is None:
                raise PlanNotFoundError(plan_id)
            if not plan.is_active:
                raise PlanNotActiveError(plan_id)
            if not plan.accepts(amount):
                raise InvestmentAmountOutOfRangeError(amount, plan.min_amount, plan.max_amount)

            await self._accounts.update_balance(
                db, user_id, SubBalance.DEPOSIT, amount, BalanceOp.SUBTRACT
            )
            position = await self._positions.insert_position(
                db,
                user_id=user_id,
                plan_id=plan.id,
                product_type=plan.product_type,
                principal=amount,
                period_profit_rate=plan.period_profit_rate,
                duration_periods=plan.duration_periods,
                start_at=self._clock(),
            )
            await self._accounts.append_transaction(
                db,
                user_id=user_id,
                tx_type=plan.product_type.investment_tx_type,
                amount=-amount,
                sub_balance=SubBalance.DEPOSIT,
                description=f"Invested {cents_to_display(amount)} in {plan.name}",
                reference_type="position",
                reference_id=position.id,
            )
            commission = await self._referrals.on_investment(db, position)

        logger.info(
            "Position %s opened: user=%s plan=%s principal=%s",
            position.id,
            user_id,
            plan.id,
            cents_to_display(amount),
        )
        return OpenPositionResponse(
            position=PositionResponse.from_domain(position),
            referral_commission_cents=commission,
        )

    async def list_positions(
        self,
        db: AsyncSession,
        user_id: str,
        status: PositionStatus | None,
    ) -> PositionListResponse:
        positions = await self._positions.list_user_positions(db, user_id, status)
        items = [PositionResponse.from_domain(p) for p in positions]
        return PositionListResponse(items=items, total=len(items))

    async def list_accruals(
        self,
        db: AsyncSession,
        user_id: str,
        position_id: str,
    ) -> AccrualListResponse:
        position = await self._positions.get_position(db, position_id)
        # Someone else's position is reported exactly like a missing one
        if position is None or position.user_id != user_id:
            raise PositionNotFoundError(position_id)
        records = await self._positions.list_accruals(db, position_id)
        return AccrualListResponse(
            position_id=position_id,
            items=[AccrualItem.from_domain(r) for r in records],
            total_cents=sum(r.amount for r in records),
        )

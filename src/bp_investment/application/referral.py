"""Referral Commission Side-Effect.

Runs inside the caller's position-opening unit: the commission is credited
in the same transaction as the investment, or not at all. The unique
(referral, position) key makes it at-most-once per position.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_account.domain.repository import AccountRepositoryProtocol
from src.bp_account.infrastructure.persistence import AccountRepository
from src.bp_common.enums import BalanceOp, SubBalance, TransactionType
from src.bp_common.money import apply_rate, cents_to_display
from src.bp_distribution.domain.models import Position
from src.bp_investment.domain.repository import ReferralRepositoryProtocol
from src.bp_investment.infrastructure.persistence import ReferralRepository

logger = logging.getLogger(__name__)


class ReferralCommissionService:
    def __init__(
        self,
        referral_repo: ReferralRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        enabled: bool | None = None,
        default_rate: Decimal | None = None,
    ) -> None:
        self._referrals: ReferralRepositoryProtocol = referral_repo or ReferralRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._enabled = settings.REFERRAL_COMMISSION_ENABLED if enabled is None else enabled
        self._default_rate = (
            settings.DEFAULT_REFERRAL_COMMISSION_RATE if default_rate is None else default_rate
        )

    async def on_investment(self, db: AsyncSession, position: Position) -> int:
        """Credit the investor's referrer, if any. Returns the commission in cents."""
        if not self._enabled:
            return 0
        referral = await self._referrals.get_active_referral(db, position.user_id)
        if referral is None:
            return 0

        rate = referral.commission_rate
        if rate is None:
            rate = self._default_rate
        commission = apply_rate(position.principal, rate)
        if commission == 0:
            return 0

        commission_id = await self._referrals.claim_commission(
            db, referral.id, position.id, commission
        )
        if commission_id is None:
            return 0

        await self._accounts.update_balance(
            db, referral.referrer_id, SubBalance.BONUS, commission, BalanceOp.ADD
        )
        tx = await self._accounts.append_transaction(
            db,
            user_id=referral.referrer_id,
            tx_type=TransactionType.REFERRAL_COMMISSION,
            amount=commission,
            sub_balance=SubBalance.BONUS,
            description=f"Referral commission {cents_to_display(commission)}",
            reference_type="position",
            reference_id=position.id,
        )
        await self._referrals.mark_commission_paid(
            db, commission_id, referral.id, tx.id, commission
        )
        logger.info(
            "Referral commission %s credited to %s for position %s",
            cents_to_display(commission),
            referral.referrer_id,
            position.id,
        )
        return commission

"""Repository Protocols for bp_investment."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_investment.domain.models import InvestmentPlan, Referral


class PlanRepositoryProtocol(Protocol):
    async def get_plan(self, db: AsyncSession, plan_id: str) -> InvestmentPlan | None: ...


class ReferralRepositoryProtocol(Protocol):
    async def get_active_referral(
        self, db: AsyncSession, referred_id: str
    ) -> Referral | None: ...

    async def claim_commission(
        self, db: AsyncSession, referral_id: str, position_id: str, amount: int
    ) -> int | None:
        """Insert the (referral, position) commission row; None if it already exists."""
        ...

    async def mark_commission_paid(
        self,
        db: AsyncSession,
        commission_id: int,
        referral_id: str,
        transaction_id: int,
        amount: int,
    ) -> None: ...

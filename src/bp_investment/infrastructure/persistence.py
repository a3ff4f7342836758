"""PlanRepository / ReferralRepository — raw SQL, caller owns the transaction."""

from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_account.infrastructure.persistence import require_transaction
from src.bp_common.enums import ProductType, ReferralStatus
from src.bp_investment.domain.models import InvestmentPlan, Referral

_GET_PLAN_SQL = text("""
    SELECT id, product_type, name, min_amount, max_amount, period_profit_rate,
           duration_periods, is_active, created_at
    FROM investment_plans
    WHERE id = :plan_id
""")

_GET_ACTIVE_REFERRAL_SQL = text("""
    SELECT id, referrer_id, referred_id, commission_rate, commission_earned, status
    FROM referrals
    WHERE referred_id = :referred_id AND status = :status
    FOR UPDATE
""")

_CLAIM_COMMISSION_SQL = text("""
    INSERT INTO referral_commissions (referral_id, position_id, amount)
    VALUES (:referral_id, :position_id, :amount)
    ON CONFLICT (referral_id, position_id) DO NOTHING
    RETURNING id
""")

_ATTACH_TRANSACTION_SQL = text("""
    UPDATE referral_commissions SET transaction_id = :transaction_id WHERE id = :commission_id
""")

_ADD_COMMISSION_EARNED_SQL = text("""
    UPDATE referrals
    SET commission_earned = commission_earned + :amount,
        updated_at = NOW()
    WHERE id = :referral_id
""")


def _row_to_plan(row: object) -> InvestmentPlan:
    return InvestmentPlan(
        id=str(row.id),  # type: ignore[attr-defined]
        product_type=ProductType(row.product_type),  # type: ignore[attr-defined]
        name=row.name,  # type: ignore[attr-defined]
        min_amount=row.min_amount,  # type: ignore[attr-defined]
        max_amount=row.max_amount,  # type: ignore[attr-defined]
        period_profit_rate=Decimal(row.period_profit_rate),  # type: ignore[attr-defined]
        duration_periods=row.duration_periods,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_referral(row: object) -> Referral:
    rate = row.commission_rate  # type: ignore[attr-defined]
    return Referral(
        id=str(row.id),  # type: ignore[attr-defined]
        referrer_id=str(row.referrer_id),  # type: ignore[attr-defined]
        referred_id=str(row.referred_id),  # type: ignore[attr-defined]
        commission_rate=Decimal(rate) if rate is not None else None,
        commission_earned=row.commission_earned,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
    )


class PlanRepository:
    async def get_plan(self, db: AsyncSession, plan_id: str) -> InvestmentPlan | None:
        result = await db.execute(_GET_PLAN_SQL, {"plan_id": plan_id})
        row = result.fetchone()
        return _row_to_plan(row) if row else None


class ReferralRepository:
    async def get_active_referral(
        self, db: AsyncSession, referred_id: str
    ) -> Referral | None:
        result = await db.execute(
            _GET_ACTIVE_REFERRAL_SQL,
            {"referred_id": referred_id, "status": ReferralStatus.ACTIVE.value},
        )
        row = result.fetchone()
        return _row_to_referral(row) if row else None

    async def claim_commission(
        self, db: AsyncSession, referral_id: str, position_id: str, amount: int
    ) -> int | None:
        require_transaction(db)
        result = await db.execute(
            _CLAIM_COMMISSION_SQL,
            {"referral_id": referral_id, "position_id": position_id, "amount": amount},
        )
        row = result.fetchone()
        return row.id if row else None

    async def mark_commission_paid(
        self,
        db: AsyncSession,
        commission_id: int,
        referral_id: str,
        transaction_id: int,
        amount: int,
    ) -> None:
        require_transaction(db)
        await db.execute(
            _ATTACH_TRANSACTION_SQL,
            {"commission_id": commission_id, "transaction_id": transaction_id},
        )
        await db.execute(
            _ADD_COMMISSION_EARNED_SQL, {"referral_id": referral_id, "amount": amount}
        )

"""Domain models for bp_investment — pure dataclasses."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.bp_common.enums import ProductType


@dataclass
class InvestmentPlan:
    id: str
    product_type: ProductType
    name: str
    min_amount: int
    max_amount: int | None  # None = no upper bound
    period_profit_rate: Decimal
    duration_periods: int
    is_active: bool
    created_at: datetime | None = None

    def accepts(self, amount: int) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount


@dataclass
class Referral:
    id: str
    referrer_id: str
    referred_id: str
    commission_rate: Decimal | None  # None = platform default
    commission_earned: int
    status: str

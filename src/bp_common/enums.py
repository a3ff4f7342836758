"""Global enums — must match DB CHECK constraints exactly."""

from datetime import timedelta
from enum import Enum


class ProductType(str, Enum):
    """Position product. Each product accrues over its own fixed period."""

    STANDARD = "standard"
    LIVE_TRADE = "live_trade"

    @property
    def period(self) -> timedelta:
        if self is ProductType.STANDARD:
            return timedelta(days=1)
        return timedelta(hours=1)

    @property
    def profit_tx_type(self) -> "TransactionType":
        if self is ProductType.STANDARD:
            return TransactionType.PROFIT
        return TransactionType.LIVE_TRADE_PROFIT

    @property
    def investment_tx_type(self) -> "TransactionType":
        if self is ProductType.STANDARD:
            return TransactionType.INVESTMENT
        return TransactionType.LIVE_TRADE_INVESTMENT


class UserRole(str, Enum):
    INVESTOR = "investor"
    ADMIN = "admin"


class SubBalance(str, Enum):
    """Named sub-balances that sum into user_balances.total_balance.

    credit_score_balance is deliberately not a member: it is not money.
    """

    DEPOSIT = "deposit"
    PROFIT = "profit"
    BONUS = "bonus"
    CARD = "card"

    @property
    def column(self) -> str:
        return f"{self.value}_balance"


class BalanceOp(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"


class TransactionType(str, Enum):
    # Position opening
    INVESTMENT = "investment"
    LIVE_TRADE_INVESTMENT = "live_trade_investment"
    # Accruals
    PROFIT = "profit"
    LIVE_TRADE_PROFIT = "live_trade_profit"
    # Lifecycle
    PRINCIPAL_RETURN = "principal_return"
    PRINCIPAL_REFUND = "principal_refund"
    # Referral side-effect
    REFERRAL_COMMISSION = "referral_commission"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ReferralStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def parse_product_type(value: str) -> ProductType:
    """Accept both the enum value and its URL slug ('live_trade' / 'live-trade')."""
    return ProductType(value.replace("-", "_"))

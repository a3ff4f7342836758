"""Domain models for bp_account — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.bp_common.enums import SubBalance


@dataclass
class Balance:
    user_id: str
    deposit_balance: int     # cents
    profit_balance: int      # cents
    bonus_balance: int       # cents
    card_balance: int        # cents
    total_balance: int       # cents, always the sum of the four above
    credit_score_balance: int = 0   # points, not money, never in total
    version: int = 0
    updated_at: datetime | None = None

    def sub_balance(self, name: SubBalance) -> int:
        return int(getattr(self, name.column))


@dataclass
class Transaction:
    id: int                          # BIGSERIAL
    user_id: str
    tx_type: str                     # TransactionType value
    amount: int                      # cents, positive=credit negative=debit
    balance_type: str                # SubBalance value
    description: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    status: str = "completed"
    created_at: datetime | None = None

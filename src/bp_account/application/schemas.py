"""Pydantic schemas and cursor utilities for bp_account API."""

import base64
import json

from pydantic import BaseModel

from src.bp_account.domain.models import Balance, Transaction
from src.bp_common.money import cents_to_display

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except (ValueError, KeyError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    deposit_balance_cents: int
    profit_balance_cents: int
    bonus_balance_cents: int
    card_balance_cents: int
    total_balance_cents: int
    total_balance_display: str
    credit_score: int

    @classmethod
    def from_domain(cls, balance: Balance) -> "BalanceResponse":
        return cls(
            user_id=balance.user_id,
            deposit_balance_cents=balance.deposit_balance,
            profit_balance_cents=balance.profit_balance,
            bonus_balance_cents=balance.bonus_balance,
            card_balance_cents=balance.card_balance,
            total_balance_cents=balance.total_balance,
            total_balance_display=cents_to_display(balance.total_balance),
            credit_score=balance.credit_score_balance,
        )


class TransactionItem(BaseModel):
    id: int
    tx_type: str
    amount_cents: int
    amount_display: str
    balance_type: str
    reference_type: str | None
    reference_id: str | None
    description: str | None
    status: str
    created_at: str  # ISO8601 string

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionItem":
        return cls(
            id=tx.id,
            tx_type=tx.tx_type,
            amount_cents=tx.amount,
            amount_display=cents_to_display(tx.amount),
            balance_type=tx.balance_type,
            reference_type=tx.reference_type,
            reference_id=tx.reference_id,
            description=tx.description,
            status=tx.status,
            created_at=tx.created_at.isoformat() if tx.created_at else "",
        )


class TransactionListResponse(BaseModel):
    items: list[TransactionItem]
    next_cursor: str | None
    has_more: bool

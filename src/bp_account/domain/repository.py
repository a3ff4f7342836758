"""Repository Protocol — dependency inversion for testability.

Unit tests inject a double that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_account.domain.models import Balance, Transaction
from src.bp_common.enums import BalanceOp, SubBalance, TransactionType


class AccountRepositoryProtocol(Protocol):
    async def get_balance(self, db: AsyncSession, user_id: str) -> Balance | None: ...

    async def update_balance(
        self,
        db: AsyncSession,
        user_id: str,
        sub_balance: SubBalance,
        amount: int,
        op: BalanceOp,
    ) -> Balance: ...

    async def append_transaction(
        self,
        db: AsyncSession,
        user_id: str,
        tx_type: TransactionType,
        amount: int,
        sub_balance: SubBalance,
        description: str,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> Transaction: ...

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
    ) -> list[Transaction]: ...

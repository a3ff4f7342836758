"""AccountRepository — concrete implementation of AccountRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING and
move the named sub-balance and total_balance together, so the
total = sum(sub-balances) CHECK constraint holds after every statement.
A result of 0 rows on a subtract means insufficient funds.

Transaction ownership: the CALLER opens the unit with `transaction_scope(db)`.
Mutations refuse to run outside one.
"""

from sqlalchemy import TextClause, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_account.domain.models import Balance, Transaction
from src.bp_common.enums import BalanceOp, SubBalance, TransactionStatus, TransactionType
from src.bp_common.errors import AccountNotFoundError, InsufficientBalanceError, InternalError

_BALANCE_COLUMNS = """
    user_id, deposit_balance, profit_balance, bonus_balance, card_balance,
    total_balance, credit_score_balance, version, updated_at
"""


def _build_update_sql(sub_balance: SubBalance, op: BalanceOp) -> TextClause:
    col = sub_balance.column
    if op is BalanceOp.ADD:
        return text(f"""
            UPDATE user_balances
            SET {col} = {col} + :amount,
                total_balance = total_balance + :amount,
                version = version + 1,
                updated_at = NOW()
            WHERE user_id = :user_id
            RETURNING {_BALANCE_COLUMNS}
        """)
    return text(f"""
        UPDATE user_balances
        SET {col} = {col} - :amount,
            total_balance = total_balance - :amount,
            version = version + 1,
            updated_at = NOW()
        WHERE user_id = :user_id AND {col} >= :amount
        RETURNING {_BALANCE_COLUMNS}
    """)


# Closed set: one prepared statement per (sub-balance, op), never built from caller input
_UPDATE_BALANCE_SQL: dict[tuple[SubBalance, BalanceOp], TextClause] = {
    (sub, op): _build_update_sql(sub, op) for sub in SubBalance for op in BalanceOp
}

_GET_BALANCE_SQL = text(f"""
    SELECT {_BALANCE_COLUMNS}
    FROM user_balances
    WHERE user_id = :user_id
""")

_INSERT_TRANSACTION_SQL = text("""
    INSERT INTO transactions
        (user_id, tx_type, amount, balance_type, description,
         reference_type, reference_id, status)
    VALUES
        (:user_id, :tx_type, :amount, :balance_type, :description,
         :reference_type, :reference_id, :status)
    RETURNING id, user_id, tx_type, amount, balance_type, description,
              reference_type, reference_id, status, created_at
""")

_LIST_TRANSACTIONS_SQL = text("""
    SELECT id, user_id, tx_type, amount, balance_type, description,
           reference_type, reference_id, status, created_at
    FROM transactions
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
      AND (CAST(:tx_type AS TEXT) IS NULL OR tx_type = CAST(:tx_type AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_balance(row: object) -> Balance:
    return Balance(
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        deposit_balance=row.deposit_balance,  # type: ignore[attr-defined]
        profit_balance=row.profit_balance,  # type: ignore[attr-defined]
        bonus_balance=row.bonus_balance,  # type: ignore[attr-defined]
        card_balance=row.card_balance,  # type: ignore[attr-defined]
        total_balance=row.total_balance,  # type: ignore[attr-defined]
        credit_score_balance=row.credit_score_balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_transaction(row: object) -> Transaction:
    return Transaction(
        id=row.id,  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        tx_type=row.tx_type,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_type=row.balance_type,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        reference_type=row.reference_type,  # type: ignore[attr-defined]
        reference_id=row.reference_id,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def require_transaction(db: AsyncSession) -> None:
    """Ledger mutations are only legal inside an open transaction_scope() unit."""
    if not db.in_transaction():
        raise InternalError("Ledger mutation attempted outside a transaction scope")


class AccountRepository:
    """Concrete repository — all operations atomic at the SQL level."""

    async def get_balance(self, db: AsyncSession, user_id: str) -> Balance | None:
        result = await db.execute(_GET_BALANCE_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_balance(row) if row else None

    async def update_balance(
        self,
        db: AsyncSession,
        user_id: str,
        sub_balance: SubBalance,
        amount: int,
        op: BalanceOp,
    ) -> Balance:
        require_transaction(db)
        if amount < 0:
            raise InternalError(f"Balance adjustment must be non-negative, got {amount}")
        result = await db.execute(
            _UPDATE_BALANCE_SQL[(sub_balance, op)],
            {"user_id": user_id, "amount": amount},
        )
        row = result.fetchone()
        if row is not None:
            return _row_to_balance(row)

        current = await self.get_balance(db, user_id)
        if current is None:
            raise AccountNotFoundError(user_id)
        raise InsufficientBalanceError(amount, current.sub_balance(sub_balance))

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
    ) -> Transaction:
        require_transaction(db)
        result = await db.execute(
            _INSERT_TRANSACTION_SQL,
            {
                "user_id": user_id,
                "tx_type": tx_type.value,
                "amount": amount,
                "balance_type": sub_balance.value,
                "description": description,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "status": TransactionStatus.COMPLETED.value,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Transaction insert returned no rows")
        return _row_to_transaction(row)

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
    ) -> list[Transaction]:
        result = await db.execute(
            _LIST_TRANSACTIONS_SQL,
            {
                "user_id": user_id,
                "cursor_id": cursor_id,
                "tx_type": tx_type,
                "limit": limit,
            },
        )
        return [_row_to_transaction(row) for row in result.fetchall()]

"""In-memory transactional double of the ledger store.

FakeSession mirrors the slice of AsyncSession the services use: begin /
commit / rollback / in_transaction and the async context manager. Every
write made by the in-memory repositories registers an undo step on the
session, so a rollback restores exactly what that unit changed even while
other sessions are interleaved with it. The accrual uniqueness key is
enforced like the real UNIQUE constraint (insert returns None on conflict).

Failure injection:
    ledger.failing_positions  -> add_cumulative_profit raises OperationalError
    ledger.failing_users      -> update_balance raises OperationalError
    ledger.unreachable        -> list_eligible_positions raises OperationalError
"""

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from itertools import count

import pytest
from sqlalchemy.exc import OperationalError

from src.bp_account.domain.models import Balance, Transaction
from src.bp_common.enums import BalanceOp, ProductType, SubBalance, TransactionType
from src.bp_common.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InternalError,
    PositionNotFoundError,
)
from src.bp_distribution.domain.models import (
    AccrualRecord,
    DistributionStats,
    Position,
    PositionStatus,
)
from src.bp_investment.domain.models import InvestmentPlan, Referral

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _storage_error(statement: str) -> OperationalError:
    return OperationalError(statement, {}, Exception("connection reset by peer"))


class FakeSession:
    def __init__(self, ledger: "InMemoryLedger") -> None:
        self._ledger = ledger
        self._in_tx = False
        self._undo: list[Callable[[], None]] = []
        self.commits = 0
        self.rollbacks = 0

    def in_transaction(self) -> bool:
        return self._in_tx

    async def begin(self) -> None:
        if self._in_tx:
            raise RuntimeError("A transaction is already begun on this Session")
        self._in_tx = True
        self._undo = []

    async def commit(self) -> None:
        self._in_tx = False
        self._undo = []
        self.commits += 1

    async def rollback(self) -> None:
        for undo in reversed(self._undo):
            undo()
        self._undo = []
        self._in_tx = False
        self.rollbacks += 1

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    async def __aenter__(self) -> "FakeSession":
        self._ledger.sessions.append(self)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._in_tx:
            await self.rollback()


def _require_tx(db: FakeSession) -> None:
    if not db.in_transaction():
        raise InternalError("Ledger mutation attempted outside a transaction scope")


class InMemoryLedger:
    def __init__(self) -> None:
        self.positions: dict[str, Position] = {}
        self.accruals: dict[tuple[str, int], AccrualRecord] = {}
        self.balances: dict[str, Balance] = {}
        self.transactions: list[Transaction] = []
        self.settings: dict[str, str] = {}
        self.plans: dict[str, InvestmentPlan] = {}
        self.referrals: dict[str, Referral] = {}
        self.commissions: dict[tuple[str, str], dict[str, object]] = {}
        self.sessions: list[FakeSession] = []
        self.failing_positions: set[str] = set()
        self.failing_users: set[str] = set()
        self.unreachable = False
        self.clock = T0
        self._ids = count(1)

        self.position_repo = InMemoryPositionRepository(self)
        self.account_repo = InMemoryAccountRepository(self)
        self.setting_repo = InMemorySettingRepository(self)
        self.plan_repo = InMemoryPlanRepository(self)
        self.referral_repo = InMemoryReferralRepository(self)

    def next_id(self) -> int:
        return next(self._ids)

    def session(self) -> FakeSession:
        return FakeSession(self)

    # session_factory() -> async context manager, like async_sessionmaker
    def session_factory(self) -> FakeSession:
        return self.session()

    def ensure_balance(self, user_id: str, deposit: int = 0) -> Balance:
        if user_id not in self.balances:
            self.balances[user_id] = Balance(
                user_id=user_id,
                deposit_balance=deposit,
                profit_balance=0,
                bonus_balance=0,
                card_balance=0,
                total_balance=deposit,
            )
        return self.balances[user_id]

    def add_position(
        self,
        user_id: str = "user-1",
        principal: int = 100_000,
        rate: Decimal = Decimal("0.02"),
        duration: int = 5,
        product_type: ProductType = ProductType.STANDARD,
        start_at: datetime = T0,
        status: PositionStatus = PositionStatus.ACTIVE,
    ) -> Position:
        self.ensure_balance(user_id)
        position = Position(
            id=str(uuid.uuid4()),
            user_id=user_id,
            plan_id="plan-1",
            product_type=product_type,
            principal=principal,
            period_profit_rate=rate,
            duration_periods=duration,
            start_at=start_at,
            end_at=None if not status.is_terminal else start_at,
            cumulative_profit=0,
            status=status,
        )
        self.positions[position.id] = position
        return replace(position)

    def add_plan(
        self,
        product_type: ProductType = ProductType.STANDARD,
        min_amount: int = 10_000,
        max_amount: int | None = 10_000_000,
        rate: Decimal = Decimal("0.02"),
        duration: int = 5,
        is_active: bool = True,
    ) -> InvestmentPlan:
        plan = InvestmentPlan(
            id=str(uuid.uuid4()),
            product_type=product_type,
            name=f"{product_type.value} plan",
            min_amount=min_amount,
            max_amount=max_amount,
            period_profit_rate=rate,
            duration_periods=duration,
            is_active=is_active,
        )
        self.plans[plan.id] = plan
        return plan

    def add_referral(
        self, referrer_id: str, referred_id: str, rate: Decimal | None = Decimal("0.10")
    ) -> Referral:
        self.ensure_balance(referrer_id)
        referral = Referral(
            id=str(uuid.uuid4()),
            referrer_id=referrer_id,
            referred_id=referred_id,
            commission_rate=rate,
            commission_earned=0,
            status="active",
        )
        self.referrals[referral.id] = referral
        return referral

    def records_for(self, position_id: str) -> list[AccrualRecord]:
        return sorted(
            (r for (pid, _), r in self.accruals.items() if pid == position_id),
            key=lambda r: r.period_index,
        )

    def transactions_of(self, tx_type: TransactionType) -> list[Transaction]:
        return [t for t in self.transactions if t.tx_type == tx_type.value]


class InMemoryPositionRepository:
    def __init__(self, ledger: InMemoryLedger) -> None:
        self._ledger = ledger

    async def get_position(
        self, db: FakeSession, position_id: str, for_update: bool = False
    ) -> Position | None:
        position = self._ledger.positions.get(position_id)
        return replace(position) if position else None

    async def list_eligible_positions(
        self, db: FakeSession, product_type: ProductType
    ) -> list[Position]:
        if self._ledger.unreachable:
            raise _storage_error("SELECT positions")
        return [
            replace(p)
            for p in self._ledger.positions.values()
            if p.product_type is product_type and p.status.is_eligible
        ]

    async def list_user_positions(
        self, db: FakeSession, user_id: str, status: PositionStatus | None
    ) -> list[Position]:
        return [
            replace(p)
            for p in self._ledger.positions.values()
            if p.user_id == user_id and (status is None or p.status is status)
        ]

    async def insert_position(
        self,
        db: FakeSession,
        user_id: str,
        plan_id: str,
        product_type: ProductType,
        principal: int,
        period_profit_rate: Decimal,
        duration_periods: int,
        start_at: datetime,
    ) -> Position:
        _require_tx(db)
        position = Position(
            id=str(uuid.uuid4()),
            user_id=user_id,
            plan_id=plan_id,
            product_type=product_type,
            principal=principal,
            period_profit_rate=period_profit_rate,
            duration_periods=duration_periods,
            start_at=start_at,
            end_at=None,
            cumulative_profit=0,
            status=PositionStatus.ACTIVE,
        )
        self._ledger.positions[position.id] = position
        db.on_rollback(lambda: self._ledger.positions.pop(position.id, None))
        return replace(position)

    async def list_paid_periods(self, db: FakeSession, position_id: str) -> set[int]:
        return {idx for (pid, idx) in self._ledger.accruals if pid == position_id}

    async def accrual_exists(self, db: FakeSession, position_id: str, period_index: int) -> bool:
        exists = (position_id, period_index) in self._ledger.accruals
        await asyncio.sleep(0)  # I/O round trip: lets concurrent units interleave
        return exists

    async def insert_accrual(
        self,
        db: FakeSession,
        position_id: str,
        period_index: int,
        amount: int,
        period_at: datetime,
    ) -> AccrualRecord | None:
        _require_tx(db)
        key = (position_id, period_index)
        if key in self._ledger.accruals:
            return None
        record = AccrualRecord(
            id=self._ledger.next_id(),
            position_id=position_id,
            period_index=period_index,
            amount=amount,
            period_at=period_at,
            credited_at=self._ledger.clock,
        )
        self._ledger.accruals[key] = record
        db.on_rollback(lambda: self._ledger.accruals.pop(key, None))
        return record

    async def add_cumulative_profit(self, db: FakeSession, position_id: str, amount: int) -> None:
        _require_tx(db)
        if position_id in self._ledger.failing_positions:
            raise _storage_error("UPDATE positions")
        position = self._ledger.positions.get(position_id)
        if position is None:
            raise PositionNotFoundError(position_id)
        position.cumulative_profit += amount

        def undo() -> None:
            position.cumulative_profit -= amount

        db.on_rollback(undo)

    async def transition_status(
        self,
        db: FakeSession,
        position_id: str,
        sources: tuple[PositionStatus, ...],
        target: PositionStatus,
        end_at: datetime | None,
    ) -> Position | None:
        _require_tx(db)
        position = self._ledger.positions.get(position_id)
        if position is None or position.status not in sources:
            return None
        previous = (position.status, position.end_at)
        position.status, position.end_at = target, end_at

        def undo() -> None:
            position.status, position.end_at = previous

        db.on_rollback(undo)
        return replace(position)

    async def count_accruals(self, db: FakeSession, position_id: str) -> int:
        return len(await self.list_paid_periods(db, position_id))

    async def list_accruals(self, db: FakeSession, position_id: str) -> list[AccrualRecord]:
        return self._ledger.records_for(position_id)

    async def list_open_positions_with_paid_counts(
        self, db: FakeSession, product_type: ProductType | None
    ) -> list[tuple[Position, int]]:
        return [
            (replace(p), len(self._ledger.records_for(p.id)))
            for p in self._ledger.positions.values()
            if p.status.is_eligible and (product_type is None or p.product_type is product_type)
        ]

    async def get_stats(
        self, db: FakeSession, product_type: ProductType | None, day_start: datetime
    ) -> DistributionStats:
        selected = [
            p
            for p in self._ledger.positions.values()
            if product_type is None or p.product_type is product_type
        ]
        ids = {p.id for p in selected}
        open_positions = [p for p in selected if p.status.is_eligible]
        return DistributionStats(
            product_type=product_type,
            active_positions=len(open_positions),
            total_principal=sum(p.principal for p in open_positions),
            total_profit_distributed=sum(p.cumulative_profit for p in selected),
            profit_distributed_today=sum(
                r.amount
                for (pid, _), r in self._ledger.accruals.items()
                if pid in ids and r.credited_at >= day_start
            ),
        )


class InMemoryAccountRepository:
    def __init__(self, ledger: InMemoryLedger) -> None:
        self._ledger = ledger

    async def get_balance(self, db: FakeSession, user_id: str) -> Balance | None:
        balance = self._ledger.balances.get(user_id)
        return replace(balance) if balance else None

    async def update_balance(
        self,
        db: FakeSession,
        user_id: str,
        sub_balance: SubBalance,
        amount: int,
        op: BalanceOp,
    ) -> Balance:
        _require_tx(db)
        if user_id in self._ledger.failing_users:
            raise _storage_error("UPDATE user_balances")
        balance = self._ledger.balances.get(user_id)
        if balance is None:
            raise AccountNotFoundError(user_id)
        attr = sub_balance.column
        current = getattr(balance, attr)
        delta = amount if op is BalanceOp.ADD else -amount
        if current + delta < 0:
            raise InsufficientBalanceError(amount, current)
        setattr(balance, attr, current + delta)
        balance.total_balance += delta
        balance.version += 1

        def undo() -> None:
            setattr(balance, attr, getattr(balance, attr) - delta)
            balance.total_balance -= delta
            balance.version -= 1

        db.on_rollback(undo)
        return replace(balance)

    async def append_transaction(
        self,
        db: FakeSession,
        user_id: str,
        tx_type: TransactionType,
        amount: int,
        sub_balance: SubBalance,
        description: str,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> Transaction:
        _require_tx(db)
        tx = Transaction(
            id=self._ledger.next_id(),
            user_id=user_id,
            tx_type=tx_type.value,
            amount=amount,
            balance_type=sub_balance.value,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            created_at=self._ledger.clock,
        )
        self._ledger.transactions.append(tx)
        db.on_rollback(lambda: self._ledger.transactions.remove(tx))
        return tx

    async def list_transactions(
        self,
        db: FakeSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
    ) -> list[Transaction]:
        rows = [
            t
            for t in sorted(self._ledger.transactions, key=lambda t: t.id, reverse=True)
            if t.user_id == user_id
            and (cursor_id is None or t.id < cursor_id)
            and (tx_type is None or t.tx_type == tx_type)
        ]
        return rows[:limit]


class InMemorySettingRepository:
    def __init__(self, ledger: InMemoryLedger) -> None:
        self._ledger = ledger

    async def get_value(self, db: FakeSession, key: str) -> str | None:
        return self._ledger.settings.get(key)

    async def try_stamp(
        self, db: FakeSession, key: str, now: datetime, not_after: datetime
    ) -> bool:
        _require_tx(db)
        raw = self._ledger.settings.get(key)
        if raw is not None and datetime.fromisoformat(raw) > not_after:
            return False
        self._ledger.settings[key] = now.isoformat()

        def undo() -> None:
            if raw is None:
                self._ledger.settings.pop(key, None)
            else:
                self._ledger.settings[key] = raw

        db.on_rollback(undo)
        return True

    async def restore_stamp(
        self,
        db: FakeSession,
        key: str,
        stamped: datetime,
        previous: datetime | None,
    ) -> bool:
        _require_tx(db)
        raw = self._ledger.settings.get(key)
        if raw != stamped.isoformat():
            return False
        if previous is None:
            del self._ledger.settings[key]
        else:
            self._ledger.settings[key] = previous.isoformat()
        db.on_rollback(lambda: self._ledger.settings.__setitem__(key, raw))
        return True


class InMemoryPlanRepository:
    def __init__(self, ledger: InMemoryLedger) -> None:
        self._ledger = ledger

    async def get_plan(self, db: FakeSession, plan_id: str) -> InvestmentPlan | None:
        return self._ledger.plans.get(plan_id)


class InMemoryReferralRepository:
    def __init__(self, ledger: InMemoryLedger) -> None:
        self._ledger = ledger

    async def get_active_referral(self, db: FakeSession, referred_id: str) -> Referral | None:
        for referral in self._ledger.referrals.values():
            if referral.referred_id == referred_id and referral.status == "active":
                return replace(referral)
        return None

    async def claim_commission(
        self, db: FakeSession, referral_id: str, position_id: str, amount: int
    ) -> int | None:
        _require_tx(db)
        key = (referral_id, position_id)
        if key in self._ledger.commissions:
            return None
        commission_id = self._ledger.next_id()
        self._ledger.commissions[key] = {
            "id": commission_id,
            "amount": amount,
            "transaction_id": None,
        }
        db.on_rollback(lambda: self._ledger.commissions.pop(key, None))
        return commission_id

    async def mark_commission_paid(
        self,
        db: FakeSession,
        commission_id: int,
        referral_id: str,
        transaction_id: int,
        amount: int,
    ) -> None:
        _require_tx(db)
        for row in self._ledger.commissions.values():
            if row["id"] == commission_id:
                row["transaction_id"] = transaction_id
        referral = self._ledger.referrals[referral_id]
        referral.commission_earned += amount

        def undo() -> None:
            referral.commission_earned -= amount

        db.on_rollback(undo)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def at() -> Callable[..., datetime]:
    """at(days=2, hours=3) -> T0 + offset."""

    def _at(**offset: float) -> datetime:
        return T0 + timedelta(**offset)

    return _at

"""Unit tests for operator actions: force-complete, deactivate, delete."""

from decimal import Decimal

import pytest

from src.bp_common.enums import ProductType, TransactionType
from src.bp_common.errors import (
    InvalidStatusTransitionError,
    PositionNotFoundError,
    PositionTerminalError,
)
from src.bp_distribution.application.lifecycle import LifecycleAdvancer
from src.bp_distribution.application.orchestrator import DistributionOrchestrator
from src.bp_distribution.domain.models import PositionStatus


def _advancer(ledger, refund: bool = True) -> LifecycleAdvancer:
    return LifecycleAdvancer(
        ledger.position_repo,
        ledger.account_repo,
        return_principal=True,
        refund_before_first_accrual=refund,
    )


def _live_trade(ledger):  # type: ignore[no-untyped-def]
    return ledger.add_position(
        principal=50_000,
        rate=Decimal("0.005"),
        duration=10,
        product_type=ProductType.LIVE_TRADE,
    )


class TestForceComplete:
    async def test_live_trade_force_completed_at_hour_four(self, ledger, at) -> None:
        position = _live_trade(ledger)
        advancer = _advancer(ledger)
        orchestrator = DistributionOrchestrator(
            ledger.session_factory, position_repo=ledger.position_repo, advancer=advancer
        )
        await orchestrator.run(ProductType.LIVE_TRADE, at(hours=4))
        assert len(ledger.records_for(position.id)) == 4

        async with ledger.session() as db:
            result = await advancer.force_complete(db, position.id, at(hours=4))

        stored = ledger.positions[position.id]
        assert stored.status is PositionStatus.DEACTIVATED
        assert stored.end_at == at(hours=4)
        assert stored.cumulative_profit == 1_000
        assert result.principal_refunded == 0
        assert ledger.balances["user-1"].profit_balance == 1_000
        assert ledger.transactions_of(TransactionType.PRINCIPAL_REFUND) == []

        later = await orchestrator.run(ProductType.LIVE_TRADE, at(hours=9))
        assert later.processed == 0
        assert len(ledger.records_for(position.id)) == 4

    async def test_force_complete_catches_up_due_periods_first(self, ledger, at) -> None:
        position = _live_trade(ledger)

        async with ledger.session() as db:
            result = await _advancer(ledger).force_complete(
                db, position.id, at(hours=4, minutes=30)
            )

        assert result.periods_credited == 4
        assert result.amount_credited == 1_000
        assert result.principal_refunded == 0
        assert ledger.positions[position.id].status is PositionStatus.DEACTIVATED

    async def test_refund_when_no_period_was_ever_credited(self, ledger, at) -> None:
        position = _live_trade(ledger)

        async with ledger.session() as db:
            result = await _advancer(ledger).force_complete(db, position.id, at(minutes=30))

        assert ledger.positions[position.id].status is PositionStatus.DEACTIVATED
        assert result.principal_refunded == 50_000
        assert ledger.balances["user-1"].deposit_balance == 50_000
        [refund] = ledger.transactions_of(TransactionType.PRINCIPAL_REFUND)
        assert refund.amount == 50_000
        assert refund.balance_type == "deposit"
        assert ledger.transactions_of(TransactionType.PRINCIPAL_RETURN) == []

    async def test_refund_can_be_disabled(self, ledger, at) -> None:
        position = _live_trade(ledger)

        async with ledger.session() as db:
            result = await _advancer(ledger, refund=False).force_complete(
                db, position.id, at(minutes=30)
            )

        assert result.principal_refunded == 0
        assert ledger.balances["user-1"].deposit_balance == 0

    async def test_duration_reached_completes_normally(self, ledger, at) -> None:
        position = _live_trade(ledger)

        async with ledger.session() as db:
            result = await _advancer(ledger).force_complete(db, position.id, at(hours=12))

        stored = ledger.positions[position.id]
        assert stored.status is PositionStatus.COMPLETED
        assert stored.end_at == at(hours=10)
        assert result.periods_credited == 10
        assert result.principal_returned == 50_000
        assert result.principal_refunded == 0

    async def test_terminal_position_is_rejected(self, ledger, at) -> None:
        position = ledger.add_position(status=PositionStatus.COMPLETED)

        async with ledger.session() as db:
            with pytest.raises(PositionTerminalError):
                await _advancer(ledger).force_complete(db, position.id, at(days=1))

    async def test_unknown_position(self, ledger, at) -> None:
        async with ledger.session() as db:
            with pytest.raises(PositionNotFoundError):
                await _advancer(ledger).force_complete(db, "missing", at(days=1))


class TestDeactivateAndDelete:
    async def test_deactivate_does_no_catch_up_accrual(self, ledger, at) -> None:
        position = _live_trade(ledger)

        async with ledger.session() as db:
            result = await _advancer(ledger).deactivate(db, position.id, at(hours=3))

        assert ledger.accruals == {}
        assert result.position.status == PositionStatus.DEACTIVATED
        assert result.principal_refunded == 50_000

    async def test_deactivate_is_idempotent(self, ledger, at) -> None:
        position = _live_trade(ledger)
        advancer = _advancer(ledger)

        async with ledger.session() as db:
            first = await advancer.deactivate(db, position.id, at(minutes=5))
            second = await advancer.deactivate(db, position.id, at(minutes=10))

        assert first.changed
        assert not second.changed
        assert second.principal_refunded == 0
        assert len(ledger.transactions_of(TransactionType.PRINCIPAL_REFUND)) == 1
        assert ledger.positions[position.id].end_at == at(minutes=5)

    async def test_delete_keeps_paid_profit(self, ledger, at) -> None:
        position = _live_trade(ledger)
        advancer = _advancer(ledger)
        async with ledger.session() as db:
            await advancer.advance(db, position, at(hours=2))
            result = await advancer.delete(db, position.id, at(hours=2))

        assert ledger.positions[position.id].status is PositionStatus.DELETED
        assert ledger.positions[position.id].cumulative_profit == 500
        assert result.principal_refunded == 0

    async def test_delete_is_idempotent(self, ledger, at) -> None:
        position = _live_trade(ledger)
        advancer = _advancer(ledger)

        async with ledger.session() as db:
            await advancer.delete(db, position.id, at(hours=1))
            again = await advancer.delete(db, position.id, at(hours=2))

        assert not again.changed

    async def test_other_terminal_state_cannot_be_changed(self, ledger, at) -> None:
        position = _live_trade(ledger)
        advancer = _advancer(ledger)

        async with ledger.session() as db:
            await advancer.deactivate(db, position.id, at(hours=1))
            with pytest.raises(InvalidStatusTransitionError):
                await advancer.delete(db, position.id, at(hours=2))

        assert ledger.positions[position.id].status is PositionStatus.DEACTIVATED

    async def test_expired_pending_can_be_deactivated(self, ledger, at) -> None:
        position = ledger.add_position(duration=2, status=PositionStatus.EXPIRED_PENDING)

        async with ledger.session() as db:
            result = await _advancer(ledger).deactivate(db, position.id, at(days=3))

        assert result.position.status is PositionStatus.DEACTIVATED

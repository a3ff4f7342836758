"""Lifecycle Advancer — catch-up accrual, completion and early termination.

Normal completion:
    active ─(duration reached)─► expired_pending ─(last period paid)─► completed

expired_pending is committed on its own before the final accrual pass, so a
failed final accrual leaves the position visibly "due to close" and eligible
for the next run. The last period is always paid before the position closes.

Early termination (operator action) is a separate path: deactivated/deleted,
paid profit is never reversed, and principal is refunded only when the
position never received an accrual.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_account.domain.repository import AccountRepositoryProtocol
from src.bp_account.infrastructure.persistence import AccountRepository
from src.bp_common.database import transaction_scope
from src.bp_common.enums import BalanceOp, SubBalance, TransactionType
from src.bp_common.errors import PositionNotFoundError, PositionTerminalError
from src.bp_common.money import cents_to_display
from src.bp_distribution.application.accrual import AccrualExecutor
from src.bp_distribution.application.guard import DistributionGuard
from src.bp_distribution.domain.lifecycle import ensure_transition, sources_for
from src.bp_distribution.domain.models import (
    Position,
    PositionRunResult,
    PositionStatus,
    TerminationResult,
)
from src.bp_distribution.domain.periods import due_period_indices, is_duration_reached
from src.bp_distribution.domain.repository import PositionRepositoryProtocol
from src.bp_distribution.infrastructure.persistence import PositionRepository

logger = logging.getLogger(__name__)


class LifecycleAdvancer:
    def __init__(
        self,
        position_repo: PositionRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        executor: AccrualExecutor | None = None,
        return_principal: bool | None = None,
        refund_before_first_accrual: bool | None = None,
    ) -> None:
        self._positions: PositionRepositoryProtocol = position_repo or PositionRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._guard = DistributionGuard(self._positions)
        self._executor = executor or AccrualExecutor(self._positions, self._accounts, self._guard)
        self._return_principal = (
            settings.RETURN_PRINCIPAL_ON_COMPLETION
            if return_principal is None
            else return_principal
        )
        self._refund_before_first_accrual = (
            settings.REFUND_PRINCIPAL_BEFORE_FIRST_ACCRUAL
            if refund_before_first_accrual is None
            else refund_before_first_accrual
        )

    # ------------------------------------------------------------------
    # Scheduled path
    # ------------------------------------------------------------------

    async def advance(
        self,
        db: AsyncSession,
        position: Position,
        now: datetime,
        result: PositionRunResult | None = None,
    ) -> PositionRunResult:
        """Credit every due period of one position, then close it if its duration is reached.

        Raises AccrualFailedError on the first failed period; periods committed
        before it stay committed and are already counted in `result`.
        """
        result = result or PositionRunResult(position.id)
        if not is_duration_reached(
            position.start_at, position.period, position.duration_periods, now
        ):
            await self.settle_due_periods(db, position, now, result)
            return result

        if position.status is PositionStatus.ACTIVE:
            async with transaction_scope(db):
                marked = await self._positions.transition_status(
                    db,
                    position.id,
                    (PositionStatus.ACTIVE,),
                    PositionStatus.EXPIRED_PENDING,
                    end_at=None,
                )
            if marked is None:
                # Moved on concurrently; only continue if another run left it open
                async with transaction_scope(db):
                    marked = await self._positions.get_position(db, position.id)
                if marked is None or marked.status.is_terminal:
                    return result
            position = marked

        await self.settle_due_periods(db, position, now, result)
        if result.stopped:
            logger.debug("Position %s closed by another actor mid-pass", position.id)
            return result
        await self._complete(db, position, result)
        return result

    async def settle_due_periods(
        self,
        db: AsyncSession,
        position: Position,
        now: datetime,
        result: PositionRunResult,
    ) -> PositionRunResult:
        """Guard-filter due periods and commit each remaining one in its own unit."""
        async with transaction_scope(db):
            paid = await self._guard.paid_periods(db, position.id)
        due = due_period_indices(
            position.start_at, position.period, position.duration_periods, now
        )
        pending = [i for i in due if i not in paid]
        result.skipped += len(due) - len(pending)
        for period_index in pending:
            accrual = await self._executor.credit_period(db, position, period_index)
            result.record(accrual)
            if result.stopped:
                break
        return result

    async def _complete(
        self,
        db: AsyncSession,
        position: Position,
        result: PositionRunResult,
    ) -> None:
        async with transaction_scope(db):
            paid = await self._guard.paid_periods(db, position.id)
            unpaid = [i for i in range(1, position.duration_periods + 1) if i not in paid]
            if unpaid:
                logger.warning(
                    "Position %s left open: periods %s not yet credited", position.id, unpaid
                )
                return

            closed = await self._positions.transition_status(
                db,
                position.id,
                sources_for(PositionStatus.COMPLETED),
                PositionStatus.COMPLETED,
                end_at=position.scheduled_end,
            )
            if closed is None:
                return  # another run closed it

            if self._return_principal and position.principal > 0:
                await self._accounts.update_balance(
                    db, position.user_id, SubBalance.DEPOSIT, position.principal, BalanceOp.ADD
                )
                await self._accounts.append_transaction(
                    db,
                    user_id=position.user_id,
                    tx_type=TransactionType.PRINCIPAL_RETURN,
                    amount=position.principal,
                    sub_balance=SubBalance.DEPOSIT,
                    description=f"Principal returned {cents_to_display(position.principal)}",
                    reference_type="position",
                    reference_id=position.id,
                )
                result.principal_returned = position.principal

        result.completed = True
        logger.info(
            "Position %s completed after %d periods, end_at=%s",
            position.id,
            position.duration_periods,
            position.scheduled_end.isoformat(),
        )

    # ------------------------------------------------------------------
    # Operator path
    # ------------------------------------------------------------------

    async def force_complete(
        self,
        db: AsyncSession,
        position_id: str,
        now: datetime,
    ) -> TerminationResult:
        """Settle everything due, then close one position now.

        Duration reached: the normal completion sequence (status completed).
        Otherwise: terminated as deactivated, with the early-termination refund rule.
        """
        async with transaction_scope(db):
            position = await self._positions.get_position(db, position_id)
        if position is None:
            raise PositionNotFoundError(position_id)
        if position.status.is_terminal:
            raise PositionTerminalError(position_id, position.status.value)

        run = PositionRunResult(position_id)
        if is_duration_reached(
            position.start_at, position.period, position.duration_periods, now
        ):
            await self.advance(db, position, now, run)
            async with transaction_scope(db):
                refreshed = await self._positions.get_position(db, position_id)
            return TerminationResult(
                position=refreshed or position,
                periods_credited=run.periods_credited,
                amount_credited=run.amount_credited,
                principal_returned=run.principal_returned,
                changed=run.completed,
            )

        await self.settle_due_periods(db, position, now, run)
        termination = await self._terminate(db, position_id, PositionStatus.DEACTIVATED, now)
        termination.periods_credited = run.periods_credited
        termination.amount_credited = run.amount_credited
        return termination

    async def deactivate(
        self, db: AsyncSession, position_id: str, now: datetime
    ) -> TerminationResult:
        return await self._terminate(db, position_id, PositionStatus.DEACTIVATED, now)

    async def delete(self, db: AsyncSession, position_id: str, now: datetime) -> TerminationResult:
        return await self._terminate(db, position_id, PositionStatus.DELETED, now)

    async def _terminate(
        self,
        db: AsyncSession,
        position_id: str,
        target: PositionStatus,
        now: datetime,
    ) -> TerminationResult:
        async with transaction_scope(db):
            position = await self._positions.get_position(db, position_id, for_update=True)
            if position is None:
                raise PositionNotFoundError(position_id)
            if position.status is target:
                return TerminationResult(position=position, changed=False)
            ensure_transition(position.status, target)

            updated = await self._positions.transition_status(
                db, position_id, (position.status,), target, end_at=now
            )
            if updated is None:
                raise PositionTerminalError(position_id, position.status.value)

            refunded = 0
            if (
                self._refund_before_first_accrual
                and position.principal > 0
                and await self._positions.count_accruals(db, position_id) == 0
            ):
                await self._accounts.update_balance(
                    db, position.user_id, SubBalance.DEPOSIT, position.principal, BalanceOp.ADD
                )
                await self._accounts.append_transaction(
                    db,
                    user_id=position.user_id,
                    tx_type=TransactionType.PRINCIPAL_REFUND,
                    amount=position.principal,
                    sub_balance=SubBalance.DEPOSIT,
                    description=(
                        f"Principal refunded on {target.value} "
                        f"{cents_to_display(position.principal)}"
                    ),
                    reference_type="position",
                    reference_id=position_id,
                )
                refunded = position.principal

        logger.info(
            "Position %s %s (paid profit kept %s, principal refunded %s)",
            position_id,
            target.value,
            cents_to_display(updated.cumulative_profit),
            cents_to_display(refunded),
        )
        return TerminationResult(position=updated, principal_refunded=refunded)

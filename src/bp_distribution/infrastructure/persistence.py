"""PositionRepository / SystemSettingRepository — PostgreSQL implementations.

Exactly-once is enforced by the UNIQUE (position_id, period_index) key on
accrual_records: insert_accrual uses ON CONFLICT DO NOTHING and reports a
lost race as None instead of raising. Status changes are conditional
UPDATEs over the allowed source states, so a transition happens at most once
no matter how many runs race for it.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_account.infrastructure.persistence import require_transaction
from src.bp_common.enums import ProductType
from src.bp_common.errors import InternalError, PositionNotFoundError
from src.bp_distribution.domain.models import (
    AccrualRecord,
    DistributionStats,
    Position,
    PositionStatus,
)

_POSITION_COLUMNS = """
    id, user_id, plan_id, product_type, principal, period_profit_rate,
    duration_periods, start_at, end_at, cumulative_profit, status,
    created_at, updated_at
"""

_OPEN_STATUSES = [PositionStatus.ACTIVE.value, PositionStatus.EXPIRED_PENDING.value]

_GET_POSITION_SQL = text(f"SELECT {_POSITION_COLUMNS} FROM positions WHERE id = :position_id")
_GET_POSITION_FOR_UPDATE_SQL = text(
    f"SELECT {_POSITION_COLUMNS} FROM positions WHERE id = :position_id FOR UPDATE"
)

_LIST_ELIGIBLE_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE product_type = :product_type
      AND status = ANY(CAST(:statuses AS TEXT[]))
    ORDER BY start_at ASC, id ASC
""")

_LIST_USER_POSITIONS_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE user_id = :user_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
    ORDER BY start_at DESC, id DESC
""")

_INSERT_POSITION_SQL = text(f"""
    INSERT INTO positions
        (user_id, plan_id, product_type, principal, period_profit_rate,
         duration_periods, start_at, end_at, cumulative_profit, status)
    VALUES
        (:user_id, :plan_id, :product_type, :principal, :period_profit_rate,
         :duration_periods, :start_at, NULL, 0, 'active')
    RETURNING {_POSITION_COLUMNS}
""")

_LIST_PAID_PERIODS_SQL = text("""
    SELECT period_index FROM accrual_records WHERE position_id = :position_id
""")

_ACCRUAL_EXISTS_SQL = text("""
    SELECT 1 FROM accrual_records
    WHERE position_id = :position_id AND period_index = :period_index
""")

_ACCRUAL_COLUMNS = "id, position_id, period_index, amount, period_at, credited_at"

_INSERT_ACCRUAL_SQL = text(f"""
    INSERT INTO accrual_records (position_id, period_index, amount, period_at)
    VALUES (:position_id, :period_index, :amount, :period_at)
    ON CONFLICT (position_id, period_index) DO NOTHING
    RETURNING {_ACCRUAL_COLUMNS}
""")

_ADD_CUMULATIVE_PROFIT_SQL = text("""
    UPDATE positions
    SET cumulative_profit = cumulative_profit + :amount,
        updated_at = NOW()
    WHERE id = :position_id
    RETURNING id
""")

_TRANSITION_STATUS_SQL = text(f"""
    UPDATE positions
    SET status = :target,
        end_at = :end_at,
        updated_at = NOW()
    WHERE id = :position_id
      AND status = ANY(CAST(:sources AS TEXT[]))
    RETURNING {_POSITION_COLUMNS}
""")

_COUNT_ACCRUALS_SQL = text("""
    SELECT COUNT(*) FROM accrual_records WHERE position_id = :position_id
""")

_LIST_ACCRUALS_SQL = text(f"""
    SELECT {_ACCRUAL_COLUMNS}
    FROM accrual_records
    WHERE position_id = :position_id
    ORDER BY period_index ASC
""")

_LIST_PROGRESS_SQL = text(f"""
    SELECT {_POSITION_COLUMNS},
           (SELECT COUNT(*) FROM accrual_records a WHERE a.position_id = positions.id)
               AS paid_count
    FROM positions
    WHERE status = ANY(CAST(:statuses AS TEXT[]))
      AND (CAST(:product_type AS TEXT) IS NULL OR product_type = CAST(:product_type AS TEXT))
    ORDER BY start_at ASC, id ASC
""")

_POSITION_STATS_SQL = text("""
    SELECT
        COUNT(*) FILTER (WHERE status = ANY(CAST(:statuses AS TEXT[]))) AS active_positions,
        COALESCE(SUM(principal) FILTER (WHERE status = ANY(CAST(:statuses AS TEXT[]))), 0)
            AS total_principal,
        COALESCE(SUM(cumulative_profit), 0) AS total_profit_distributed
    FROM positions
    WHERE (CAST(:product_type AS TEXT) IS NULL OR product_type = CAST(:product_type AS TEXT))
""")

_PROFIT_TODAY_SQL = text("""
    SELECT COALESCE(SUM(a.amount), 0) AS profit_today
    FROM accrual_records a
    JOIN positions p ON p.id = a.position_id
    WHERE a.credited_at >= :day_start
      AND (CAST(:product_type AS TEXT) IS NULL OR p.product_type = CAST(:product_type AS TEXT))
""")


def _row_to_position(row: object) -> Position:
    return Position(
        id=str(row.id),  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        plan_id=str(row.plan_id),  # type: ignore[attr-defined]
        product_type=ProductType(row.product_type),  # type: ignore[attr-defined]
        principal=row.principal,  # type: ignore[attr-defined]
        period_profit_rate=Decimal(row.period_profit_rate),  # type: ignore[attr-defined]
        duration_periods=row.duration_periods,  # type: ignore[attr-defined]
        start_at=row.start_at,  # type: ignore[attr-defined]
        end_at=row.end_at,  # type: ignore[attr-defined]
        cumulative_profit=row.cumulative_profit,  # type: ignore[attr-defined]
        status=PositionStatus(row.status),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_accrual(row: object) -> AccrualRecord:
    return AccrualRecord(
        id=row.id,  # type: ignore[attr-defined]
        position_id=str(row.position_id),  # type: ignore[attr-defined]
        period_index=row.period_index,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        period_at=row.period_at,  # type: ignore[attr-defined]
        credited_at=row.credited_at,  # type: ignore[attr-defined]
    )


class PositionRepository:
    """Concrete repository — raw SQL, caller owns the transaction."""

    async def get_position(
        self,
        db: AsyncSession,
        position_id: str,
        for_update: bool = False,
    ) -> Position | None:
        sql = _GET_POSITION_FOR_UPDATE_SQL if for_update else _GET_POSITION_SQL
        result = await db.execute(sql, {"position_id": position_id})
        row = result.fetchone()
        return _row_to_position(row) if row else None

    async def list_eligible_positions(
        self,
        db: AsyncSession,
        product_type: ProductType,
    ) -> list[Position]:
        result = await db.execute(
            _LIST_ELIGIBLE_SQL,
            {"product_type": product_type.value, "statuses": _OPEN_STATUSES},
        )
        return [_row_to_position(row) for row in result.fetchall()]

    async def list_user_positions(
        self,
        db: AsyncSession,
        user_id: str,
        status: PositionStatus | None,
    ) -> list[Position]:
        result = await db.execute(
            _LIST_USER_POSITIONS_SQL,
            {"user_id": user_id, "status": status.value if status else None},
        )
        return [_row_to_position(row) for row in result.fetchall()]

    async def insert_position(
        self,
        db: AsyncSession,
        user_id: str,
        plan_id: str,
        product_type: ProductType,
        principal: int,
        period_profit_rate: Decimal,
        duration_periods: int,
        start_at: datetime,
    ) -> Position:
        require_transaction(db)
        result = await db.execute(
            _INSERT_POSITION_SQL,
            {
                "user_id": user_id,
                "plan_id": plan_id,
                "product_type": product_type.value,
                "principal": principal,
                "period_profit_rate": period_profit_rate,
                "duration_periods": duration_periods,
                "start_at": start_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Position insert returned no rows")
        return _row_to_position(row)

    async def list_paid_periods(self, db: AsyncSession, position_id: str) -> set[int]:
        result = await db.execute(_LIST_PAID_PERIODS_SQL, {"position_id": position_id})
        return {row.period_index for row in result.fetchall()}

    async def accrual_exists(
        self, db: AsyncSession, position_id: str, period_index: int
    ) -> bool:
        result = await db.execute(
            _ACCRUAL_EXISTS_SQL,
            {"position_id": position_id, "period_index": period_index},
        )
        return result.fetchone() is not None

    async def insert_accrual(
        self,
        db: AsyncSession,
        position_id: str,
        period_index: int,
        amount: int,
        period_at: datetime,
    ) -> AccrualRecord | None:
        require_transaction(db)
        result = await db.execute(
            _INSERT_ACCRUAL_SQL,
            {
                "position_id": position_id,
                "period_index": period_index,
                "amount": amount,
                "period_at": period_at,
            },
        )
        row = result.fetchone()
        return _row_to_accrual(row) if row else None

    async def add_cumulative_profit(
        self, db: AsyncSession, position_id: str, amount: int
    ) -> None:
        require_transaction(db)
        result = await db.execute(
            _ADD_CUMULATIVE_PROFIT_SQL, {"position_id": position_id, "amount": amount}
        )
        if result.fetchone() is None:
            raise PositionNotFoundError(position_id)

    async def transition_status(
        self,
        db: AsyncSession,
        position_id: str,
        sources: tuple[PositionStatus, ...],
        target: PositionStatus,
        end_at: datetime | None,
    ) -> Position | None:
        require_transaction(db)
        result = await db.execute(
            _TRANSITION_STATUS_SQL,
            {
                "position_id": position_id,
                "sources": [s.value for s in sources],
                "target": target.value,
                "end_at": end_at,
            },
        )
        row = result.fetchone()
        return _row_to_position(row) if row else None

    async def count_accruals(self, db: AsyncSession, position_id: str) -> int:
        result = await db.execute(_COUNT_ACCRUALS_SQL, {"position_id": position_id})
        return int(result.scalar_one())

    async def list_accruals(self, db: AsyncSession, position_id: str) -> list[AccrualRecord]:
        result = await db.execute(_LIST_ACCRUALS_SQL, {"position_id": position_id})
        return [_row_to_accrual(row) for row in result.fetchall()]

    async def list_open_positions_with_paid_counts(
        self,
        db: AsyncSession,
        product_type: ProductType | None,
    ) -> list[tuple[Position, int]]:
        result = await db.execute(
            _LIST_PROGRESS_SQL,
            {
                "statuses": _OPEN_STATUSES,
                "product_type": product_type.value if product_type else None,
            },
        )
        return [(_row_to_position(row), row.paid_count) for row in result.fetchall()]

    async def get_stats(
        self,
        db: AsyncSession,
        product_type: ProductType | None,
        day_start: datetime,
    ) -> DistributionStats:
        product = product_type.value if product_type else None
        totals = (
            await db.execute(
                _POSITION_STATS_SQL, {"statuses": _OPEN_STATUSES, "product_type": product}
            )
        ).fetchone()
        today = (
            await db.execute(
                _PROFIT_TODAY_SQL, {"day_start": day_start, "product_type": product}
            )
        ).fetchone()
        return DistributionStats(
            product_type=product_type,
            active_positions=int(totals.active_positions),  # type: ignore[union-attr]
            total_principal=int(totals.total_principal),  # type: ignore[union-attr]
            total_profit_distributed=int(
                totals.total_profit_distributed  # type: ignore[union-attr]
            ),
            profit_distributed_today=int(today.profit_today),  # type: ignore[union-attr]
        )


_GET_SETTING_SQL = text("SELECT value FROM system_settings WHERE key = :key")

# The WHERE on the conflict branch makes check-and-stamp one atomic statement:
# two operators clicking at once cannot both pass the cooldown.
_TRY_STAMP_SQL = text("""
    INSERT INTO system_settings (key, value, updated_at)
    VALUES (:key, :value, NOW())
    ON CONFLICT (key) DO UPDATE
        SET value = EXCLUDED.value, updated_at = NOW()
        WHERE CAST(system_settings.value AS TIMESTAMPTZ) <= :not_after
    RETURNING key
""")

_RESTORE_STAMP_SQL = text("""
    UPDATE system_settings
    SET value = :previous, updated_at = NOW()
    WHERE key = :key AND value = :stamped
    RETURNING key
""")

_DROP_STAMP_SQL = text("""
    DELETE FROM system_settings
    WHERE key = :key AND value = :stamped
    RETURNING key
""")


class SystemSettingRepository:
    async def get_value(self, db: AsyncSession, key: str) -> str | None:
        result = await db.execute(_GET_SETTING_SQL, {"key": key})
        row = result.fetchone()
        return row.value if row else None

    async def try_stamp(
        self,
        db: AsyncSession,
        key: str,
        now: datetime,
        not_after: datetime,
    ) -> bool:
        require_transaction(db)
        result = await db.execute(
            _TRY_STAMP_SQL,
            {"key": key, "value": now.isoformat(), "not_after": not_after},
        )
        return result.fetchone() is not None

    async def restore_stamp(
        self,
        db: AsyncSession,
        key: str,
        stamped: datetime,
        previous: datetime | None,
    ) -> bool:
        require_transaction(db)
        params = {"key": key, "stamped": stamped.isoformat()}
        if previous is None:
            result = await db.execute(_DROP_STAMP_SQL, params)
        else:
            result = await db.execute(
                _RESTORE_STAMP_SQL, {**params, "previous": previous.isoformat()}
            )
        return result.fetchone() is not None

"""Domain models for bp_distribution — pure dataclasses and the position state type."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from src.bp_common.enums import ProductType


class PositionStatus(str, Enum):
    """Closed set of position states. Must match the positions CHECK constraint."""

    ACTIVE = "active"
    EXPIRED_PENDING = "expired_pending"  # duration reached, final accrual not yet run
    COMPLETED = "completed"
    DEACTIVATED = "deactivated"
    DELETED = "deleted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_eligible(self) -> bool:
        """Only non-terminal positions are ever evaluated for accrual."""
        return self not in _TERMINAL


_TERMINAL = frozenset(
    {PositionStatus.COMPLETED, PositionStatus.DEACTIVATED, PositionStatus.DELETED}
)


@dataclass
class Position:
    id: str
    user_id: str
    plan_id: str
    product_type: ProductType
    principal: int
    period_profit_rate: Decimal
    duration_periods: int
    start_at: datetime
    end_at: datetime | None
    cumulative_profit: int
    status: PositionStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def period(self) -> timedelta:
        return self.product_type.period

    @property
    def scheduled_end(self) -> datetime:
        return self.start_at + self.period * self.duration_periods


@dataclass
class AccrualRecord:
    id: int
    position_id: str
    period_index: int
    amount: int
    period_at: datetime
    credited_at: datetime


class AccrualOutcome(str, Enum):
    CREDITED = "credited"
    ALREADY_PAID = "already_paid"  # guard hit or lost the storage-level race
    INELIGIBLE = "ineligible"  # position went terminal before the unit ran


@dataclass
class AccrualResult:
    position_id: str
    period_index: int
    outcome: AccrualOutcome
    amount: int = 0


@dataclass
class PositionRunResult:
    """What one distribution pass did to one position."""

    position_id: str
    periods_credited: int = 0
    amount_credited: int = 0
    skipped: int = 0
    completed: bool = False
    principal_returned: int = 0
    # Set when the position left the eligible states mid-pass
    stopped: bool = False

    def record(self, result: AccrualResult) -> None:
        if result.outcome is AccrualOutcome.INELIGIBLE:
            self.stopped = True
        if result.outcome is AccrualOutcome.CREDITED:
            self.periods_credited += 1
            self.amount_credited += result.amount
        else:
            self.skipped += 1


@dataclass
class DistributionSummary:
    """Ephemeral per-run aggregate; only ever logged and returned."""

    product_type: ProductType
    timestamp: datetime
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    completed: int = 0
    periods_credited: int = 0
    amount_credited_cents: int = 0
    failed_position_ids: list[str] = field(default_factory=list)

    def add(self, result: PositionRunResult) -> None:
        self.processed += 1
        self.skipped += result.skipped
        self.periods_credited += result.periods_credited
        self.amount_credited_cents += result.amount_credited
        if result.completed:
            self.completed += 1

    def add_failure(self, position_id: str, partial: PositionRunResult | None = None) -> None:
        """Failed positions still report any periods committed before the failure."""
        self.errors += 1
        self.failed_position_ids.append(position_id)
        if partial is not None:
            self.skipped += partial.skipped
            self.periods_credited += partial.periods_credited
            self.amount_credited_cents += partial.amount_credited


@dataclass
class TerminationResult:
    position: Position
    periods_credited: int = 0
    amount_credited: int = 0
    principal_refunded: int = 0
    principal_returned: int = 0
    changed: bool = True


@dataclass
class ReadinessStatus:
    product_type: ProductType
    ready: bool
    cooldown: timedelta
    last_run_at: datetime | None = None
    next_allowed_at: datetime | None = None
    retry_after: timedelta | None = None
    # Stamp this acquisition replaced; lets a failed run hand the slot back
    previous_run_at: datetime | None = None

    @property
    def retry_after_seconds(self) -> int:
        if self.retry_after is None:
            return 0
        return max(0, math.ceil(self.retry_after.total_seconds()))

    @property
    def remaining_formatted(self) -> str:
        return format_remaining(self.retry_after)


def format_remaining(remaining: timedelta | None) -> str:
    """Human text for a cooldown: '1h 5m remaining', '4m 10s remaining', 'Ready'."""
    if remaining is None or remaining <= timedelta(0):
        return "Ready"
    total = math.ceil(remaining.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m remaining"
    if minutes:
        return f"{minutes}m {seconds}s remaining"
    return f"{seconds}s remaining"


@dataclass
class PositionProgress:
    position: Position
    periods_elapsed: int
    periods_paid: int
    periods_remaining: int
    scheduled_end: datetime
    next_period_at: datetime | None
    progress_percent: Decimal
    is_expired: bool


@dataclass
class DistributionStats:
    product_type: ProductType | None
    active_positions: int
    total_principal: int
    total_profit_distributed: int
    profit_distributed_today: int

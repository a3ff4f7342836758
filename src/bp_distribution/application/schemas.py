"""Pydantic response schemas for bp_distribution API."""

from decimal import Decimal

from pydantic import BaseModel

from src.bp_common.money import cents_to_display
from src.bp_distribution.domain.models import (
    AccrualRecord,
    DistributionStats,
    DistributionSummary,
    Position,
    PositionProgress,
    ReadinessStatus,
    TerminationResult,
)


class DistributionSummaryResponse(BaseModel):
    product_type: str
    processed: int
    skipped: int
    errors: int
    completed: int
    periods_credited: int
    amount_credited_cents: int
    failed_position_ids: list[str]
    timestamp: str  # ISO8601

    @classmethod
    def from_domain(cls, summary: DistributionSummary) -> "DistributionSummaryResponse":
        return cls(
            product_type=summary.product_type.value,
            processed=summary.processed,
            skipped=summary.skipped,
            errors=summary.errors,
            completed=summary.completed,
            periods_credited=summary.periods_credited,
            amount_credited_cents=summary.amount_credited_cents,
            failed_position_ids=list(summary.failed_position_ids),
            timestamp=summary.timestamp.isoformat(),
        )


class ReadinessResponse(BaseModel):
    product_type: str
    ready: bool
    cooldown_seconds: int
    retry_after_seconds: int
    last_run_at: str | None
    next_allowed_at: str | None
    remaining_formatted: str

    @classmethod
    def from_domain(cls, status: ReadinessStatus) -> "ReadinessResponse":
        return cls(
            product_type=status.product_type.value,
            ready=status.ready,
            cooldown_seconds=int(status.cooldown.total_seconds()),
            retry_after_seconds=status.retry_after_seconds,
            last_run_at=status.last_run_at.isoformat() if status.last_run_at else None,
            next_allowed_at=status.next_allowed_at.isoformat() if status.next_allowed_at else None,
            remaining_formatted=status.remaining_formatted,
        )


class ManualRunResponse(BaseModel):
    """Manual runs report the summary (if one ran) plus the gate's verdict."""

    started: bool
    message: str
    readiness: ReadinessResponse
    summary: DistributionSummaryResponse | None = None


class PositionResponse(BaseModel):
    id: str
    user_id: str
    plan_id: str
    product_type: str
    principal_cents: int
    principal_display: str
    period_profit_rate: Decimal
    duration_periods: int
    start_at: str
    end_at: str | None
    cumulative_profit_cents: int
    cumulative_profit_display: str
    status: str

    @classmethod
    def from_domain(cls, position: Position) -> "PositionResponse":
        return cls(
            id=position.id,
            user_id=position.user_id,
            plan_id=position.plan_id,
            product_type=position.product_type.value,
            principal_cents=position.principal,
            principal_display=cents_to_display(position.principal),
            period_profit_rate=position.period_profit_rate,
            duration_periods=position.duration_periods,
            start_at=position.start_at.isoformat(),
            end_at=position.end_at.isoformat() if position.end_at else None,
            cumulative_profit_cents=position.cumulative_profit,
            cumulative_profit_display=cents_to_display(position.cumulative_profit),
            status=position.status.value,
        )


class AccrualItem(BaseModel):
    period_index: int
    amount_cents: int
    amount_display: str
    period_at: str
    credited_at: str

    @classmethod
    def from_domain(cls, record: AccrualRecord) -> "AccrualItem":
        return cls(
            period_index=record.period_index,
            amount_cents=record.amount,
            amount_display=cents_to_display(record.amount),
            period_at=record.period_at.isoformat(),
            credited_at=record.credited_at.isoformat(),
        )


class PositionProgressItem(BaseModel):
    position: PositionResponse
    periods_elapsed: int
    periods_paid: int
    periods_remaining: int
    scheduled_end: str
    next_period_at: str | None
    progress_percent: Decimal
    is_expired: bool

    @classmethod
    def from_domain(cls, progress: PositionProgress) -> "PositionProgressItem":
        return cls(
            position=PositionResponse.from_domain(progress.position),
            periods_elapsed=progress.periods_elapsed,
            periods_paid=progress.periods_paid,
            periods_remaining=progress.periods_remaining,
            scheduled_end=progress.scheduled_end.isoformat(),
            next_period_at=progress.next_period_at.isoformat() if progress.next_period_at else None,
            progress_percent=progress.progress_percent,
            is_expired=progress.is_expired,
        )


class PositionProgressListResponse(BaseModel):
    items: list[PositionProgressItem]
    total: int


class DistributionStatsResponse(BaseModel):
    product_type: str | None
    active_positions: int
    total_principal_cents: int
    total_profit_distributed_cents: int
    profit_distributed_today_cents: int
    total_profit_distributed_display: str

    @classmethod
    def from_domain(cls, stats: DistributionStats) -> "DistributionStatsResponse":
        return cls(
            product_type=stats.product_type.value if stats.product_type else None,
            active_positions=stats.active_positions,
            total_principal_cents=stats.total_principal,
            total_profit_distributed_cents=stats.total_profit_distributed,
            profit_distributed_today_cents=stats.profit_distributed_today,
            total_profit_distributed_display=cents_to_display(stats.total_profit_distributed),
        )


class TerminationResponse(BaseModel):
    position: PositionResponse
    changed: bool
    periods_credited: int
    amount_credited_cents: int
    principal_refunded_cents: int
    principal_returned_cents: int

    @classmethod
    def from_domain(cls, result: TerminationResult) -> "TerminationResponse":
        return cls(
            position=PositionResponse.from_domain(result.position),
            changed=result.changed,
            periods_credited=result.periods_credited,
            amount_credited_cents=result.amount_credited,
            principal_refunded_cents=result.principal_refunded,
            principal_returned_cents=result.principal_returned,
        )

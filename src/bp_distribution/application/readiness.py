"""Readiness Gate — cooldown between manual distribution runs.

Operator-error protection only; exactly-once is the Distribution Guard's job.
The last manual run is stamped in system_settings (one key per product) so
the gate holds across processes. Scheduled runs never consult it.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bp_common.database import transaction_scope
from src.bp_common.datetime_utils import ensure_utc
from src.bp_common.enums import ProductType
from src.bp_distribution.domain.models import ReadinessStatus
from src.bp_distribution.domain.repository import SystemSettingRepositoryProtocol
from src.bp_distribution.infrastructure.persistence import SystemSettingRepository

logger = logging.getLogger(__name__)

_KEY_PREFIX = "last_manual_distribution"


def setting_key(product_type: ProductType) -> str:
    return f"{_KEY_PREFIX}:{product_type.value}"


def default_cooldowns() -> dict[ProductType, timedelta]:
    return {
        ProductType.STANDARD: timedelta(hours=settings.STANDARD_COOLDOWN_HOURS),
        ProductType.LIVE_TRADE: timedelta(hours=settings.LIVE_TRADE_COOLDOWN_HOURS),
    }


class ReadinessGate:
    def __init__(
        self,
        repo: SystemSettingRepositoryProtocol | None = None,
        cooldowns: dict[ProductType, timedelta] | None = None,
    ) -> None:
        self._repo: SystemSettingRepositoryProtocol = repo or SystemSettingRepository()
        self._cooldowns = cooldowns or default_cooldowns()

    def cooldown(self, product_type: ProductType) -> timedelta:
        return self._cooldowns[product_type]

    async def status(
        self, db: AsyncSession, product_type: ProductType, now: datetime
    ) -> ReadinessStatus:
        async with transaction_scope(db):
            raw = await self._repo.get_value(db, setting_key(product_type))
        return self._evaluate(product_type, _parse(raw), now)

    async def try_acquire(
        self, db: AsyncSession, product_type: ProductType, now: datetime
    ) -> ReadinessStatus:
        """Stamp `now` if the cooldown has elapsed; otherwise report how long is left."""
        cooldown = self.cooldown(product_type)
        key = setting_key(product_type)
        async with transaction_scope(db):
            previous = await self._repo.get_value(db, key)
            acquired = await self._repo.try_stamp(db, key, now, not_after=now - cooldown)
            if not acquired:
                raw = await self._repo.get_value(db, key)

        if acquired:
            return ReadinessStatus(
                product_type=product_type,
                ready=True,
                cooldown=cooldown,
                last_run_at=now,
                next_allowed_at=now + cooldown,
                previous_run_at=_parse(previous),
            )

        status = self._evaluate(product_type, _parse(raw), now)
        logger.info(
            "Manual %s distribution rejected: %s",
            product_type.value,
            status.remaining_formatted,
        )
        return status

    async def release(self, db: AsyncSession, acquired: ReadinessStatus) -> bool:
        """Hand back a slot whose run never got going; no-op if it was restamped since."""
        if acquired.last_run_at is None:
            return False
        async with transaction_scope(db):
            restored = await self._repo.restore_stamp(
                db,
                setting_key(acquired.product_type),
                acquired.last_run_at,
                acquired.previous_run_at,
            )
        if restored:
            logger.info("Manual %s distribution slot released", acquired.product_type.value)
        return restored

    def _evaluate(
        self, product_type: ProductType, last_run_at: datetime | None, now: datetime
    ) -> ReadinessStatus:
        cooldown = self.cooldown(product_type)
        if last_run_at is None:
            return ReadinessStatus(product_type=product_type, ready=True, cooldown=cooldown)
        next_allowed_at = last_run_at + cooldown
        remaining = next_allowed_at - now
        ready = remaining <= timedelta(0)
        return ReadinessStatus(
            product_type=product_type,
            ready=ready,
            cooldown=cooldown,
            last_run_at=last_run_at,
            next_allowed_at=next_allowed_at,
            retry_after=None if ready else remaining,
        )


def _parse(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return ensure_utc(datetime.fromisoformat(raw))

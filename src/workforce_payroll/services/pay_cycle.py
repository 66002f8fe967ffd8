"""Pay cycle scheduling."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.errors import StoreError, ValidationError
from workforce_payroll.models import PayCycleConfig

logger = logging.getLogger(__name__)

DEFAULT_POLICY = "default"


class PayCycleFrequency(str, Enum):
    """Supported pay cycle frequencies."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class CycleWindow:
    """Inclusive date window of a pay cycle."""

    start: date
    end: date


def add_months(day: date, months: int) -> date:
    """Same calendar day ``months`` later, clamped to the month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def get_next_cycle_dates(frequency: PayCycleFrequency | str, last_end: date) -> CycleWindow:
    """Compute the cycle that starts the day after ``last_end``.

    - weekly: 7-day inclusive window
    - biweekly: 14-day inclusive window
    - monthly: up to the day before the same calendar day next month
    """
    try:
        freq = PayCycleFrequency(frequency)
    except ValueError as e:
        raise ValidationError("frequency", f"unsupported frequency {frequency!r}") from e

    start = last_end + timedelta(days=1)
    if freq == PayCycleFrequency.WEEKLY:
        end = start + timedelta(days=6)
    elif freq == PayCycleFrequency.BIWEEKLY:
        end = start + timedelta(days=13)
    else:
        end = add_months(start, 1) - timedelta(days=1)
    return CycleWindow(start=start, end=end)


class PayCycleManager:
    """Creates and advances an organization's pay cycle configuration."""

    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    async def get_config(
        self, organization_id: UUID, policy: str = DEFAULT_POLICY
    ) -> PayCycleConfig | None:
        try:
            result = await self.session.execute(
                select(PayCycleConfig).where(
                    PayCycleConfig.organization_id == organization_id,
                    PayCycleConfig.policy == policy,
                )
            )
        except SQLAlchemyError as e:
            raise StoreError(f"pay cycle lookup for organization {organization_id}", e) from e
        return result.scalar_one_or_none()

    async def configure_pay_cycle(
        self,
        organization_id: UUID,
        frequency: PayCycleFrequency | str,
        policy: str = DEFAULT_POLICY,
    ) -> PayCycleConfig:
        """Schedule the next cycle and upsert the configuration.

        An existing configuration is advanced from its ``next_cycle_end``;
        a new one starts today. ``created_at`` survives updates.
        """
        try:
            freq = PayCycleFrequency(frequency)
        except ValueError as e:
            raise ValidationError("frequency", f"unsupported frequency {frequency!r}") from e

        existing = await self.get_config(organization_id, policy)
        if existing is not None:
            last_end = existing.next_cycle_end
        else:
            last_end = self.clock.today() - timedelta(days=1)
        window = get_next_cycle_dates(freq, last_end)

        now = self.clock.now()
        if existing is None:
            config = PayCycleConfig(
                organization_id=organization_id,
                policy=policy,
                frequency=freq.value,
                next_cycle_start=window.start,
                next_cycle_end=window.end,
                created_at=now,
                updated_at=now,
            )
            self.session.add(config)
        else:
            config = existing
            config.frequency = freq.value
            config.next_cycle_start = window.start
            config.next_cycle_end = window.end
            config.updated_at = now

        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(f"pay cycle upsert for organization {organization_id}", e) from e

        logger.info(
            "Pay cycle for organization %s set to %s: %s - %s",
            organization_id,
            freq.value,
            window.start,
            window.end,
        )
        return config

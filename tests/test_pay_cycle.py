"""Tests for pay cycle scheduling."""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from workforce_payroll.clock import FixedClock
from workforce_payroll.errors import ValidationError
from workforce_payroll.models import Organization, PayCycleConfig
from workforce_payroll.services.pay_cycle import (
    PayCycleFrequency,
    PayCycleManager,
    add_months,
    get_next_cycle_dates,
)


class TestGetNextCycleDates:
    """Test cycle window computation."""

    def test_weekly(self):
        """A weekly cycle is the 7 days after the last end."""
        window = get_next_cycle_dates("weekly", date(2025, 7, 1))

        assert window.start == date(2025, 7, 2)
        assert window.end == date(2025, 7, 8)

    def test_biweekly(self):
        window = get_next_cycle_dates(PayCycleFrequency.BIWEEKLY, date(2025, 7, 1))

        assert window.start == date(2025, 7, 2)
        assert window.end == date(2025, 7, 15)

    def test_monthly(self):
        """Monthly ends the day before the same calendar day next month."""
        window = get_next_cycle_dates("monthly", date(2025, 6, 30))

        assert window.start == date(2025, 7, 1)
        assert window.end == date(2025, 7, 31)

    def test_monthly_mid_month(self):
        window = get_next_cycle_dates("monthly", date(2025, 7, 1))

        assert window.start == date(2025, 7, 2)
        assert window.end == date(2025, 8, 1)

    def test_monthly_clamps_short_month(self):
        """Jan 31 + 1 month clamps to Feb 28, so the cycle ends Feb 27."""
        window = get_next_cycle_dates("monthly", date(2025, 1, 30))

        assert window.start == date(2025, 1, 31)
        assert window.end == date(2025, 2, 27)

    def test_year_boundary(self):
        window = get_next_cycle_dates("weekly", date(2025, 12, 28))

        assert window.start == date(2025, 12, 29)
        assert window.end == date(2026, 1, 4)

    def test_end_never_before_start(self):
        day = date(2024, 1, 1)
        for _ in range(400):
            for frequency in PayCycleFrequency:
                window = get_next_cycle_dates(frequency, day)
                assert window.start == day + timedelta(days=1)
                assert window.end >= window.start
            day += timedelta(days=1)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            get_next_cycle_dates("fortnightly", date(2025, 7, 1))

        assert exc_info.value.field == "frequency"


class TestAddMonths:
    """Test calendar month arithmetic."""

    def test_plain(self):
        assert add_months(date(2025, 3, 15), 1) == date(2025, 4, 15)

    def test_clamps_to_leap_day(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_december_rolls_year(self):
        assert add_months(date(2025, 12, 10), 1) == date(2026, 1, 10)


class TestPayCycleManager:
    """Test configuration upsert."""

    async def _org(self, session) -> Organization:
        org = Organization(organization_id=uuid4(), name="Acme")
        session.add(org)
        await session.commit()
        return org

    async def test_first_configuration_starts_today(self, session):
        """A new weekly config on 2025-07-02 covers 07-02..07-08."""
        org = await self._org(session)
        clock = FixedClock(datetime(2025, 7, 2, 8, 0, tzinfo=timezone.utc))

        config = await PayCycleManager(session, clock=clock).configure_pay_cycle(
            org.organization_id, "weekly"
        )

        assert config.frequency == "weekly"
        assert config.next_cycle_start == date(2025, 7, 2)
        assert config.next_cycle_end == date(2025, 7, 8)

    async def test_reconfigure_advances_and_keeps_created_at(self, session):
        """Reconfiguring continues from the stored end, one row per org."""
        org = await self._org(session)
        first_clock = FixedClock(datetime(2025, 7, 2, 8, 0, tzinfo=timezone.utc))
        config = await PayCycleManager(session, clock=first_clock).configure_pay_cycle(
            org.organization_id, "weekly"
        )
        created_at = config.created_at

        later_clock = FixedClock(datetime(2025, 7, 9, 8, 0, tzinfo=timezone.utc))
        updated = await PayCycleManager(session, clock=later_clock).configure_pay_cycle(
            org.organization_id, "biweekly"
        )

        assert updated.frequency == "biweekly"
        assert updated.next_cycle_start == date(2025, 7, 9)
        assert updated.next_cycle_end == date(2025, 7, 22)
        assert updated.created_at == created_at
        assert updated.updated_at == later_clock.now()

        count = await session.scalar(
            select(func.count()).select_from(PayCycleConfig).where(
                PayCycleConfig.organization_id == org.organization_id
            )
        )
        assert count == 1

    async def test_invalid_frequency_writes_nothing(self, session):
        org = await self._org(session)

        with pytest.raises(ValidationError):
            await PayCycleManager(session).configure_pay_cycle(org.organization_id, "daily")

        assert await PayCycleManager(session).get_config(org.organization_id) is None

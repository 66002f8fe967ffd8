"""Tests for pay rate resolver."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from workforce_payroll.calculators.rate_resolver import RateNotFoundError, RateResolver
from workforce_payroll.errors import ValidationError
from workforce_payroll.models import EmployeeRate, Organization, User


class TestRateResolver:
    """Test effective-dated rate resolution."""

    async def test_resolve_rate_for_employee(self, session, world):
        resolver = RateResolver(session)

        rate = await resolver.resolve_hourly_rate(world.alice_id, date(2025, 7, 31))

        assert rate == Decimal("20.00")

    async def test_resolve_rate_not_found(self, session):
        resolver = RateResolver(session)
        fake_employee_id = uuid4()

        with pytest.raises(RateNotFoundError) as exc_info:
            await resolver.resolve_hourly_rate(fake_employee_id, date(2025, 7, 31))

        assert exc_info.value.employee_id == fake_employee_id

    async def test_resolve_rate_respects_effective_dates(self, session, world):
        """A raise effective mid-period applies from its date onwards."""
        session.add(
            EmployeeRate(
                employee_id=world.alice_id,
                payment_mode="hourly",
                hourly_rate=Decimal("25.00"),
                effective_from=date(2025, 7, 15),
            )
        )
        await session.flush()
        resolver = RateResolver(session)

        assert await resolver.resolve_hourly_rate(world.alice_id, date(2025, 7, 14)) == Decimal(
            "20.00"
        )
        assert await resolver.resolve_hourly_rate(world.alice_id, date(2025, 7, 15)) == Decimal(
            "25.00"
        )

    async def test_rate_not_yet_effective(self, session, world):
        resolver = RateResolver(session)

        with pytest.raises(RateNotFoundError):
            await resolver.resolve_hourly_rate(world.alice_id, date(2024, 12, 31))

    async def test_salaried_rate_not_payable_hourly(self, session, world):
        session.add(
            EmployeeRate(
                employee_id=world.bob_id,
                payment_mode="salaried",
                hourly_rate=None,
                effective_from=date(2025, 6, 1),
            )
        )
        await session.flush()

        with pytest.raises(RateNotFoundError) as exc_info:
            await RateResolver(session).resolve_hourly_rate(world.bob_id, date(2025, 7, 31))

        assert "salaried" in exc_info.value.reason


class TestAddEmployeeRate:
    """Test rate maintenance."""

    async def _foreign_admin(self, session) -> User:
        org = Organization(organization_id=uuid4(), name="Rival Contractors")
        admin = User(
            user_id=uuid4(),
            organization_id=org.organization_id,
            display_name="Rival Admin",
            role="admin",
        )
        session.add_all([org, admin])
        await session.flush()
        return admin

    async def test_admin_adds_rate(self, session, world):
        resolver = RateResolver(session)

        rate = await resolver.add_employee_rate(
            world.organization_id, world.admin_id, world.bob_id, "12.50", date(2025, 8, 1)
        )

        assert rate.hourly_rate == Decimal("12.50")
        assert rate.updated_by == world.admin_id
        current = await resolver.get_employee_rate(world.bob_id, date(2025, 8, 1))
        assert current.rate_id == rate.rate_id

    async def test_employee_cannot_add_rate(self, session, world):
        with pytest.raises(ValidationError) as exc_info:
            await RateResolver(session).add_employee_rate(
                world.organization_id, world.alice_id, world.bob_id, Decimal("99"), date(2025, 8, 1)
            )

        assert exc_info.value.field == "actor_user_id"

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    async def test_rate_must_be_positive_number(self, session, world, amount):
        with pytest.raises(ValidationError):
            await RateResolver(session).add_employee_rate(
                world.organization_id, world.admin_id, world.bob_id, amount, date(2025, 8, 1)
            )

    async def test_unknown_employee(self, session, world):
        with pytest.raises(ValidationError) as exc_info:
            await RateResolver(session).add_employee_rate(
                world.organization_id, world.admin_id, uuid4(), Decimal("10"), date(2025, 8, 1)
            )

        assert exc_info.value.field == "employee_id"

    async def test_admin_of_other_organization_cannot_set_rate(self, session, world):
        """An admin can only set rates inside their own organization."""
        rival = await self._foreign_admin(session)

        with pytest.raises(ValidationError) as exc_info:
            await RateResolver(session).add_employee_rate(
                world.organization_id, rival.user_id, world.alice_id, "99", date(2025, 8, 1)
            )

        assert exc_info.value.field == "actor_user_id"
        assert await RateResolver(session).resolve_hourly_rate(
            world.alice_id, date(2025, 8, 1)
        ) == Decimal("20.00")

    async def test_employee_of_other_organization_not_found(self, session, world):
        rival = await self._foreign_admin(session)

        with pytest.raises(ValidationError) as exc_info:
            await RateResolver(session).add_employee_rate(
                rival.organization_id, rival.user_id, world.alice_id, "99", date(2025, 8, 1)
            )

        assert exc_info.value.field == "employee_id"

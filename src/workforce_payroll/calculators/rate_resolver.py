"""Employee pay rate lookup and maintenance."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.errors import ConfigurationError, StoreError, ValidationError
from workforce_payroll.line_items import to_decimal
from workforce_payroll.models import EmployeeRate, PaymentMode, User

logger = logging.getLogger(__name__)


class RateNotFoundError(ConfigurationError):
    """Raised when no usable pay rate is configured for an employee."""

    def __init__(self, employee_id: UUID, as_of_date: date, reason: str):
        self.employee_id = employee_id
        self.as_of_date = as_of_date
        self.reason = reason
        super().__init__(
            f"No usable pay rate for employee {employee_id} on {as_of_date}: {reason}"
        )


class RateResolver:
    """Resolves the effective rate configuration for an employee.

    The effective rate is the one with the latest ``effective_from`` on or
    before the as-of date. Only hourly rates are payable by the task-based
    engine; salaried employees resolve to a configuration error.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_employee_rate(self, employee_id: UUID, as_of_date: date) -> EmployeeRate | None:
        """Get the latest rate effective on or before ``as_of_date``."""
        try:
            result = await self.session.execute(
                select(EmployeeRate)
                .where(
                    EmployeeRate.employee_id == employee_id,
                    EmployeeRate.effective_from <= as_of_date,
                )
                .order_by(EmployeeRate.effective_from.desc(), EmployeeRate.created_at.desc())
                .limit(1)
            )
        except SQLAlchemyError as e:
            raise StoreError(f"rate lookup for employee {employee_id}", e) from e
        return result.scalar_one_or_none()

    async def resolve_hourly_rate(self, employee_id: UUID, as_of_date: date) -> Decimal:
        """Resolve the hourly rate for an employee.

        Raises:
            RateNotFoundError: If there is no rate, it is not hourly, or it has no amount
        """
        rate = await self.get_employee_rate(employee_id, as_of_date)
        if rate is None:
            raise RateNotFoundError(employee_id, as_of_date, "no effective rate")
        if rate.payment_mode != PaymentMode.HOURLY.value:
            raise RateNotFoundError(
                employee_id, as_of_date, f"payment mode is {rate.payment_mode!r}"
            )
        if not rate.hourly_rate:
            raise RateNotFoundError(employee_id, as_of_date, "hourly rate not set")
        return rate.hourly_rate

    async def add_employee_rate(
        self,
        organization_id: UUID,
        actor_user_id: UUID,
        employee_id: UUID,
        hourly_rate: Decimal | int | float | str,
        effective_from: date,
        payment_mode: PaymentMode | str = PaymentMode.HOURLY,
    ) -> EmployeeRate:
        """Add a new effective-dated rate for an employee.

        Only admins and supervisors of the organization may add rates, and
        only for its own members. The hourly rate must be positive. The new
        rate is flushed, not committed.
        """
        amount = to_decimal(hourly_rate, "hourly_rate")
        if amount <= 0:
            raise ValidationError("hourly_rate", "must be a positive number")
        try:
            mode = PaymentMode(payment_mode)
        except ValueError as e:
            raise ValidationError("payment_mode", f"unsupported mode {payment_mode!r}") from e

        try:
            actor = await self.session.get(User, actor_user_id)
            employee = await self.session.get(User, employee_id)
        except SQLAlchemyError as e:
            raise StoreError("rate authorization lookup", e) from e

        if (
            actor is None
            or actor.organization_id != organization_id
            or not actor.can_manage_payroll
        ):
            raise ValidationError("actor_user_id", "only admins or supervisors can set rates")
        if employee is None or employee.organization_id != organization_id:
            raise ValidationError("employee_id", f"employee {employee_id} not found")

        rate = EmployeeRate(
            employee_id=employee_id,
            payment_mode=mode.value,
            hourly_rate=amount,
            effective_from=effective_from,
            updated_by=actor_user_id,
        )
        self.session.add(rate)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise StoreError(f"rate insert for employee {employee_id}", e) from e

        logger.info(
            "Added %s rate %s for employee %s effective %s",
            mode.value,
            amount,
            employee_id,
            effective_from,
        )
        return rate

"""Payroll approval workflow."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.errors import (
    NotificationError,
    PayrollRecordNotFoundError,
    StoreError,
    ValidationError,
)
from workforce_payroll.models import PayrollRecord
from workforce_payroll.services.notifications import NotificationSender
from workforce_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollStateMachine,
    PayrollStatus,
)

logger = logging.getLogger(__name__)


class PayrollApproval:
    """Moves payroll records from pending to approved or rejected.

    Each transition is a conditional single-record update committed on its
    own. The employee is notified afterwards; a failed notification is
    logged and never undoes the committed transition.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationSender,
        clock: Clock | None = None,
    ):
        self.session = session
        self.notifier = notifier
        self.clock = clock or SystemClock()

    async def approve(
        self,
        organization_id: UUID,
        payroll_id: UUID,
        admin_id: UUID,
        employee_id: UUID,
        period: tuple[date, date] | None = None,
        notes: str | None = None,
    ) -> PayrollRecord:
        """Approve a pending record and notify the employee."""
        record = await self._transition(
            organization_id,
            payroll_id,
            employee_id,
            PayrollStatus.APPROVED,
            {
                "approved_by": admin_id,
                "approved_at": self.clock.now(),
                "rejection_reason": None,
                "approver_notes": notes,
            },
        )

        start, end = period if period is not None else (record.period_start, record.period_end)
        await self._notify(
            employee_id,
            organization_id,
            f"Payroll approved for {start.isoformat()} - {end.isoformat()}.",
        )
        return record

    async def reject(
        self,
        organization_id: UUID,
        payroll_id: UUID,
        admin_id: UUID,
        employee_id: UUID,
        reason: str,
    ) -> PayrollRecord:
        """Reject a pending record with a mandatory reason and notify the employee."""
        if reason is None or not reason.strip():
            raise ValidationError("reason", "a rejection requires a reason")

        record = await self._transition(
            organization_id,
            payroll_id,
            employee_id,
            PayrollStatus.REJECTED,
            {
                "approved_by": admin_id,
                "approved_at": self.clock.now(),
                "rejection_reason": reason.strip(),
            },
        )

        await self._notify(employee_id, organization_id, f"Payroll rejected: {reason.strip()}")
        return record

    async def get_record(self, organization_id: UUID, payroll_id: UUID) -> PayrollRecord:
        try:
            result = await self.session.execute(
                select(PayrollRecord).where(
                    PayrollRecord.payroll_record_id == payroll_id,
                    PayrollRecord.organization_id == organization_id,
                )
            )
        except SQLAlchemyError as e:
            raise StoreError(f"payroll record lookup {payroll_id}", e) from e
        record = result.scalar_one_or_none()
        if record is None:
            raise PayrollRecordNotFoundError(organization_id, payroll_id)
        return record

    async def _transition(
        self,
        organization_id: UUID,
        payroll_id: UUID,
        employee_id: UUID,
        to_status: PayrollStatus,
        values: dict[str, Any],
    ) -> PayrollRecord:
        record = await self.get_record(organization_id, payroll_id)
        if record.employee_id != employee_id:
            raise ValidationError(
                "employee_id", f"record {payroll_id} does not belong to employee {employee_id}"
            )

        PayrollStateMachine.validate_transition(record.payroll_status, to_status)

        try:
            # Conditional update so a concurrent reviewer cannot overwrite a final state
            result = await self.session.execute(
                update(PayrollRecord)
                .where(
                    PayrollRecord.payroll_record_id == payroll_id,
                    PayrollRecord.organization_id == organization_id,
                    PayrollRecord.payroll_status == PayrollStatus.PENDING.value,
                )
                .values(payroll_status=to_status.value, **values)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                await self.session.refresh(record)
                raise InvalidTransitionError(
                    record.payroll_status,
                    to_status.value,
                    "status changed during review",
                )
            await self.session.commit()
            await self.session.refresh(record)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(f"payroll status update {payroll_id}", e) from e

        logger.info(
            "Payroll record %s %s by %s",
            payroll_id,
            to_status.value,
            values.get("approved_by"),
        )
        return record

    async def _notify(self, employee_id: UUID, organization_id: UUID, message: str) -> None:
        try:
            await self.notifier.notify(employee_id, organization_id, message)
        except NotificationError:
            logger.exception("Notification to employee %s failed", employee_id)

"""Payroll reporting and aggregation."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.errors import StoreError, ValidationError
from workforce_payroll.line_items import round2, to_decimal
from workforce_payroll.models import PayrollRecord, User
from workforce_payroll.services.state_machine import PayrollStatus


class SummarizableRecord(Protocol):
    employee_id: UUID
    net_pay: Decimal
    payroll_status: str


@dataclass(frozen=True)
class PayrollSummary:
    """Aggregate over approved payroll records."""

    total_amount: Decimal
    employee_count: int
    average_salary: Decimal


@dataclass
class EmployeeProjectPayroll:
    employee_id: UUID
    employee_name: str
    total_hours: Decimal = Decimal("0")
    total_task_pay: Decimal = Decimal("0")
    total_approved_expenses: Decimal = Decimal("0")
    grand_total_pay: Decimal = Decimal("0")
    record_count: int = 0


@dataclass
class ProjectPayrollSummary:
    project_id: UUID
    total_cost: Decimal = Decimal("0")
    total_hours: Decimal = Decimal("0")
    total_task_pay: Decimal = Decimal("0")
    total_expenses_reimbursed: Decimal = Decimal("0")
    employees: list[EmployeeProjectPayroll] = field(default_factory=list)


def month_bounds(month: int, year: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError("month", f"must be between 1 and 12 (got {month})")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class PayrollAnalytics:
    """Summaries over payroll records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def compute_summary(records: Iterable[SummarizableRecord]) -> PayrollSummary:
        """Total, distinct employees and average over approved records only."""
        total = Decimal("0")
        employees: set[UUID] = set()
        for record in records:
            if record.payroll_status != PayrollStatus.APPROVED.value:
                continue
            total += to_decimal(record.net_pay)
            employees.add(record.employee_id)

        count = len(employees)
        return PayrollSummary(
            total_amount=round2(total),
            employee_count=count,
            average_salary=round2(total / count) if count > 0 else Decimal("0.00"),
        )

    async def get_monthly_summary(
        self, organization_id: UUID, month: int, year: int
    ) -> PayrollSummary:
        """Summary of approved records whose pay period lies inside the month."""
        month_start, month_end = month_bounds(month, year)
        try:
            result = await self.session.execute(
                select(PayrollRecord).where(
                    PayrollRecord.organization_id == organization_id,
                    PayrollRecord.period_start >= month_start,
                    PayrollRecord.period_end <= month_end,
                    PayrollRecord.payroll_status == PayrollStatus.APPROVED.value,
                )
            )
        except SQLAlchemyError as e:
            raise StoreError(f"monthly payroll lookup {year}-{month:02d}", e) from e
        return self.compute_summary(result.scalars().all())

    async def list_records_for_employee(
        self, organization_id: UUID, employee_id: UUID
    ) -> list[PayrollRecord]:
        """An employee's payroll history, newest period first."""
        try:
            result = await self.session.execute(
                select(PayrollRecord)
                .where(
                    PayrollRecord.organization_id == organization_id,
                    PayrollRecord.employee_id == employee_id,
                )
                .order_by(PayrollRecord.period_start.desc(), PayrollRecord.generated_at.desc())
            )
        except SQLAlchemyError as e:
            raise StoreError(f"payroll history for employee {employee_id}", e) from e
        return list(result.scalars().all())

    async def get_project_summary(
        self, organization_id: UUID, project_id: UUID
    ) -> ProjectPayrollSummary:
        """Cost of a project across all its payroll records, per employee."""
        try:
            result = await self.session.execute(
                select(PayrollRecord, User.display_name)
                .join(User, User.user_id == PayrollRecord.employee_id, isouter=True)
                .where(
                    PayrollRecord.organization_id == organization_id,
                    PayrollRecord.project_id == project_id,
                )
                .order_by(PayrollRecord.period_start)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            raise StoreError(f"project payroll lookup {project_id}", e) from e

        summary = ProjectPayrollSummary(project_id=project_id)
        by_employee: dict[UUID, EmployeeProjectPayroll] = {}
        for record, display_name in rows:
            entry = by_employee.get(record.employee_id)
            if entry is None:
                entry = EmployeeProjectPayroll(
                    employee_id=record.employee_id,
                    employee_name=display_name or str(record.employee_id),
                )
                by_employee[record.employee_id] = entry

            entry.total_hours += record.hours_worked
            entry.total_task_pay += record.task_pay
            entry.total_approved_expenses += record.approved_expenses
            entry.grand_total_pay += record.net_pay
            entry.record_count += 1

            summary.total_hours += record.hours_worked
            summary.total_task_pay += record.task_pay
            summary.total_expenses_reimbursed += record.approved_expenses
            summary.total_cost += record.net_pay

        summary.total_cost = round2(summary.total_cost)
        summary.total_hours = round2(summary.total_hours)
        summary.total_task_pay = round2(summary.total_task_pay)
        summary.total_expenses_reimbursed = round2(summary.total_expenses_reimbursed)
        summary.employees = list(by_employee.values())
        return summary

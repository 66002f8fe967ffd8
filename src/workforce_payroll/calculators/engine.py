"""Payroll calculation engine - main orchestrator."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators.line_builder import LineItemBuilder
from workforce_payroll.calculators.rate_resolver import RateResolver
from workforce_payroll.calculators.types import (
    CalculationOptions,
    EmployeeCalculationContext,
    GrossPayResult,
    PayrollBreakdown,
)
from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.config import Settings, get_settings
from workforce_payroll.database import acquire_advisory_lock
from workforce_payroll.errors import (
    ConfigurationError,
    DuplicatePayrollRunError,
    PayrollError,
    StoreError,
    ValidationError,
)
from workforce_payroll.line_items import (
    Allowance,
    Bonus,
    Deduction,
    non_negative,
    round2,
    sum_amounts,
    to_decimal,
)
from workforce_payroll.models import (
    PAYABLE_TASK_STATUSES,
    EmployeeExpense,
    PayrollRecord,
    Task,
    User,
    UserRole,
)
from workforce_payroll.services.state_machine import PayrollStatus

logger = logging.getLogger(__name__)


def _period_bounds(period_start: date, period_end: date) -> tuple[datetime, datetime]:
    """Inclusive timestamp bounds covering whole days of a period."""
    return (
        datetime.combine(period_start, time.min, tzinfo=timezone.utc),
        datetime.combine(period_end, time.max, tzinfo=timezone.utc),
    )


class PayrollCalculationEngine:
    """Computes pay for every employee of an organization on a project.

    Batch pipeline (stable order per invocation):
    1) Skip employees that already have a record for this project period
    2) Sum elapsed time of completed/verified tasks updated in the period,
       leaving out tasks an earlier record for the project already paid
    3) Sum approved, unprocessed expenses approved in the period
    4) Resolve the hourly rate (missing rate -> 0 with a warning)
    5) Compute pay (simple gross, or full breakdown when options are given)
    6) Flag consumed expenses processed and insert all records
    7) Commit as one unit of work; any failure rolls everything back
    """

    def __init__(
        self,
        session: AsyncSession,
        rate_resolver: RateResolver | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.rate_resolver = rate_resolver or RateResolver(session)
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Pure calculations
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_gross_pay(
        hours: Decimal | int | float | str,
        rate: Decimal | int | float | str,
        expenses: Decimal | int | float | str,
    ) -> GrossPayResult:
        """Task pay for hours at a flat rate, plus reimbursed expenses."""
        hours_worked = round2(non_negative(hours, "hours"))
        hourly_rate = non_negative(rate, "rate")
        approved_expenses = round2(non_negative(expenses, "expenses"))

        task_pay = round2(hours_worked * hourly_rate)
        return GrossPayResult(
            hours_worked=hours_worked,
            task_pay=task_pay,
            approved_expenses=approved_expenses,
            gross_pay=round2(task_pay + approved_expenses),
        )

    @staticmethod
    def compute_breakdown(
        hours_worked: Decimal | int | float | str,
        hourly_rate: Decimal | int | float | str,
        approved_expenses: Decimal | int | float | str = Decimal("0"),
        overtime_threshold: Decimal | int | float | str = Decimal("40"),
        overtime_multiplier: Decimal | int | float | str = Decimal("1.5"),
        tax_rate: Decimal | int | float | str = Decimal("0"),
        existing_deductions: list[Deduction] | None = None,
        bonuses: list[Bonus] | None = None,
        allowances: list[Allowance] | None = None,
        overtime_hours: Decimal | int | float | str | None = None,
    ) -> PayrollBreakdown:
        """Full breakdown with overtime, bonuses, allowances and flat tax.

        Regular pay covers hours up to ``overtime_threshold``; the rest is
        paid at ``overtime_multiplier``. Passing ``overtime_hours`` declares
        how many of ``hours_worked`` are overtime instead of deriving it.

        Tax is ``round2(gross * tax_rate)`` appended after any existing
        deductions. Expenses are reimbursed on top of net pay, untaxed.
        """
        hours = non_negative(hours_worked, "hours_worked")
        rate = non_negative(hourly_rate, "hourly_rate")
        expenses = round2(non_negative(approved_expenses, "approved_expenses"))
        threshold = non_negative(overtime_threshold, "overtime_threshold")
        multiplier = non_negative(overtime_multiplier, "overtime_multiplier")
        tax = non_negative(tax_rate, "tax_rate")
        if tax > 1:
            raise ValidationError("tax_rate", "must be between 0 and 1")

        if overtime_hours is None:
            base_hours = min(hours, threshold)
            ot_hours = max(Decimal("0"), hours - threshold)
        else:
            ot_hours = non_negative(overtime_hours, "overtime_hours")
            if ot_hours > hours:
                raise ValidationError("overtime_hours", "cannot exceed hours_worked")
            base_hours = hours - ot_hours

        bonus_items = list(bonuses or [])
        allowance_items = list(allowances or [])

        task_pay = round2(base_hours * rate)
        overtime_pay = round2(ot_hours * rate * multiplier)
        gross_pay = LineItemBuilder.compute_gross(task_pay, overtime_pay, bonus_items, allowance_items)

        deductions = list(existing_deductions or [])
        if tax > 0:
            deductions.append(LineItemBuilder.create_tax_deduction(gross_pay, tax))

        return PayrollBreakdown(
            base_hours=base_hours,
            overtime_hours=ot_hours,
            task_pay=task_pay,
            overtime_pay=overtime_pay,
            approved_expenses=expenses,
            bonuses=bonus_items,
            allowances=allowance_items,
            total_bonuses=sum_amounts(bonus_items),
            total_allowances=sum_amounts(allowance_items),
            gross_pay=gross_pay,
            deductions=deductions,
            total_deductions=sum_amounts(deductions),
            net_pay=LineItemBuilder.compute_net(gross_pay, deductions, expenses),
        )

    # ------------------------------------------------------------------
    # Batch calculation
    # ------------------------------------------------------------------

    async def calculate_for_project(
        self,
        organization_id: UUID,
        project_id: UUID,
        period_start: date,
        period_end: date,
        actor_id: UUID,
        options: CalculationOptions | None = None,
        timeout: float | None = None,
    ) -> list[PayrollRecord]:
        """Create pending payroll records for a project period.

        Returns the records created by this invocation (empty when every
        employee already has a record for the period).

        Raises:
            ValidationError: If the period is inverted
            DuplicatePayrollRunError: If a concurrent run holds or consumed the period
            StoreError: If any read/write fails or the run times out
        """
        if period_start > period_end:
            raise ValidationError("period", f"start {period_start} is after end {period_end}")

        if timeout is None:
            timeout = self.settings.store_timeout_seconds
        # One lock per project, so overlapping periods cannot race for the same tasks
        lock_key = f"payroll:{project_id}"

        try:
            acquired = await acquire_advisory_lock(self.session, lock_key)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError("run lock acquisition", e) from e
        if not acquired:
            await self.session.rollback()
            raise DuplicatePayrollRunError(
                project_id, period_start, period_end, "another calculation holds the run lock"
            )

        try:
            records = await asyncio.wait_for(
                self._calculate_and_stage(
                    organization_id, project_id, period_start, period_end, actor_id, options
                ),
                timeout=timeout,
            )
            await self.session.commit()
        except asyncio.TimeoutError as e:
            await self.session.rollback()
            raise StoreError(
                f"calculation for project {project_id} (timed out after {timeout}s)", e
            ) from e
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicatePayrollRunError(
                project_id, period_start, period_end, "record for this period already exists"
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError("payroll batch commit", e) from e
        except (Exception, asyncio.CancelledError):
            await self.session.rollback()
            raise

        logger.info(
            "Created %d payroll record(s) for project %s (%s - %s)",
            len(records),
            project_id,
            period_start,
            period_end,
        )
        return records

    async def _calculate_and_stage(
        self,
        organization_id: UUID,
        project_id: UUID,
        period_start: date,
        period_end: date,
        actor_id: UUID,
        options: CalculationOptions | None,
    ) -> list[PayrollRecord]:
        """Gather every employee's facts, then stage all writes together."""
        employees = await self._load_employees(organization_id)

        keyed = {
            LineItemBuilder.compute_idempotency_key(
                project_id, period_start, period_end, employee.user_id
            ): employee
            for employee in employees
        }
        existing_keys = await self._existing_keys(list(keyed))
        consumed = await self._consumed_task_ids(organization_id, project_id)

        # Read phase: nothing is written until every employee succeeded
        contexts: list[EmployeeCalculationContext] = []
        for key, employee in keyed.items():
            if key in existing_keys:
                logger.warning(
                    "Skipping employee %s: payroll already exists for project %s (%s - %s)",
                    employee.user_id,
                    project_id,
                    period_start,
                    period_end,
                )
                continue
            ctx = EmployeeCalculationContext(
                employee_id=employee.user_id,
                period_start=period_start,
                period_end=period_end,
                idempotency_key=key,
                consumed_task_ids=consumed.get(employee.user_id, set()),
            )
            await self._gather_facts(ctx, organization_id, project_id)
            contexts.append(ctx)

        # Write phase
        generated_at = self.clock.now()
        records = [
            self._build_record(ctx, organization_id, project_id, actor_id, generated_at, options)
            for ctx in contexts
        ]

        expense_ids = [expense_id for ctx in contexts for expense_id in ctx.expense_ids]
        try:
            if expense_ids:
                result = await self.session.execute(
                    update(EmployeeExpense)
                    .where(
                        EmployeeExpense.expense_id.in_(expense_ids),
                        EmployeeExpense.processed.is_(False),
                    )
                    .values(processed=True)
                )
                if result.rowcount != len(expense_ids):
                    raise DuplicatePayrollRunError(
                        project_id,
                        period_start,
                        period_end,
                        "expenses were processed by another run",
                    )
            self.session.add_all(records)
            await self.session.flush()
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            raise StoreError("payroll record insert", e) from e

        return records

    async def _load_employees(self, organization_id: UUID) -> list[User]:
        try:
            result = await self.session.execute(
                select(User)
                .where(
                    User.organization_id == organization_id,
                    User.role == UserRole.EMPLOYEE.value,
                )
                .order_by(User.display_name, User.user_id)
            )
        except SQLAlchemyError as e:
            raise StoreError(f"employee lookup for organization {organization_id}", e) from e
        return list(result.scalars().all())

    async def _existing_keys(self, keys: list[str]) -> set[str]:
        if not keys:
            return set()
        try:
            result = await self.session.execute(
                select(PayrollRecord.idempotency_key).where(
                    PayrollRecord.idempotency_key.in_(keys)
                )
            )
        except SQLAlchemyError as e:
            raise StoreError("existing payroll lookup", e) from e
        return set(result.scalars().all())

    async def _consumed_task_ids(
        self, organization_id: UUID, project_id: UUID
    ) -> dict[UUID, set[str]]:
        """Task ids already paid on the project's records, per employee."""
        try:
            result = await self.session.execute(
                select(PayrollRecord.employee_id, PayrollRecord.task_ids_processed).where(
                    PayrollRecord.organization_id == organization_id,
                    PayrollRecord.project_id == project_id,
                )
            )
        except SQLAlchemyError as e:
            raise StoreError(f"processed task lookup for project {project_id}", e) from e

        consumed: dict[UUID, set[str]] = {}
        for employee_id, task_ids in result.all():
            consumed.setdefault(employee_id, set()).update(task_ids or [])
        return consumed

    async def _gather_facts(
        self,
        ctx: EmployeeCalculationContext,
        organization_id: UUID,
        project_id: UUID,
    ) -> None:
        """Load tasks, expenses and rate for one employee into ctx."""
        window_start, window_end = _period_bounds(ctx.period_start, ctx.period_end)

        try:
            task_result = await self.session.execute(
                select(Task.task_id, Task.elapsed_time_seconds).where(
                    Task.organization_id == organization_id,
                    Task.project_id == project_id,
                    Task.assigned_employee_id == ctx.employee_id,
                    Task.status.in_(PAYABLE_TASK_STATUSES),
                    Task.updated_at >= window_start,
                    Task.updated_at <= window_end,
                )
            )
            tasks = [
                row
                for row in task_result.all()
                if str(row.task_id) not in ctx.consumed_task_ids
            ]

            expense_result = await self.session.execute(
                select(EmployeeExpense.expense_id, EmployeeExpense.amount).where(
                    EmployeeExpense.organization_id == organization_id,
                    EmployeeExpense.project_id == project_id,
                    EmployeeExpense.employee_id == ctx.employee_id,
                    EmployeeExpense.approved.is_(True),
                    EmployeeExpense.processed.is_(False),
                    EmployeeExpense.approved_at >= window_start,
                    EmployeeExpense.approved_at <= window_end,
                )
            )
            expenses = expense_result.all()
        except SQLAlchemyError as e:
            raise StoreError(f"task/expense lookup for employee {ctx.employee_id}", e) from e

        total_seconds = sum(row.elapsed_time_seconds or 0 for row in tasks)
        ctx.task_ids = [row.task_id for row in tasks]
        ctx.hours_worked = LineItemBuilder.seconds_to_hours(total_seconds)

        ctx.expense_ids = [row.expense_id for row in expenses]
        ctx.approved_expenses = round2(
            sum((to_decimal(row.amount) for row in expenses), Decimal("0"))
        )

        try:
            ctx.hourly_rate = await self.rate_resolver.resolve_hourly_rate(
                ctx.employee_id, ctx.period_end
            )
        except ConfigurationError as e:
            logger.warning("Paying employee %s at rate 0: %s", ctx.employee_id, e)
            ctx.hourly_rate = Decimal("0")

    def _build_record(
        self,
        ctx: EmployeeCalculationContext,
        organization_id: UUID,
        project_id: UUID,
        actor_id: UUID,
        generated_at: datetime,
        options: CalculationOptions | None,
    ) -> PayrollRecord:
        bonuses: list[Bonus] = []
        allowances: list[Allowance] = []
        deductions: list[Deduction] = []
        overtime_hours: Decimal | None = None
        overtime_pay: Decimal | None = None

        if options is None:
            gross = self.calculate_gross_pay(ctx.hours_worked, ctx.hourly_rate, ctx.approved_expenses)
            task_pay = gross.task_pay
            approved_expenses = gross.approved_expenses
            gross_pay = gross.task_pay
            net_pay = gross.gross_pay
        else:
            breakdown = self.compute_breakdown(
                ctx.hours_worked,
                ctx.hourly_rate,
                ctx.approved_expenses,
                overtime_threshold=options.standard_hours,
                overtime_multiplier=options.overtime_multiplier,
                tax_rate=options.tax_rate,
                existing_deductions=options.custom_deductions.get(ctx.employee_id),
                bonuses=options.bonuses.get(ctx.employee_id),
                allowances=options.allowances.get(ctx.employee_id),
            )
            task_pay = breakdown.task_pay
            approved_expenses = breakdown.approved_expenses
            overtime_hours = breakdown.overtime_hours
            overtime_pay = breakdown.overtime_pay
            bonuses = breakdown.bonuses
            allowances = breakdown.allowances
            deductions = breakdown.deductions
            gross_pay = breakdown.gross_pay
            net_pay = breakdown.net_pay

        errors = LineItemBuilder.validate_totals(
            task_pay, overtime_pay, bonuses, allowances, gross_pay, deductions, approved_expenses, net_pay
        )
        if errors:
            raise PayrollError(f"Employee {ctx.employee_id}: {'; '.join(errors)}")

        return PayrollRecord(
            organization_id=organization_id,
            employee_id=ctx.employee_id,
            project_id=project_id,
            period_start=ctx.period_start,
            period_end=ctx.period_end,
            hours_worked=ctx.hours_worked,
            hourly_rate=round2(ctx.hourly_rate),
            task_pay=task_pay,
            approved_expenses=approved_expenses,
            overtime_hours=overtime_hours,
            overtime_pay=overtime_pay,
            bonuses_json=LineItemBuilder.serialize(bonuses),
            allowances_json=LineItemBuilder.serialize(allowances),
            gross_pay=gross_pay,
            deductions_json=LineItemBuilder.serialize(deductions),
            net_pay=net_pay,
            generated_by=actor_id,
            generated_at=generated_at,
            task_ids_processed=[str(task_id) for task_id in ctx.task_ids],
            expense_ids_processed=[str(expense_id) for expense_id in ctx.expense_ids],
            idempotency_key=ctx.idempotency_key,
            payroll_status=PayrollStatus.PENDING.value,
        )

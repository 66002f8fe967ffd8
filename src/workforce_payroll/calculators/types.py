"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from workforce_payroll.line_items import Allowance, Bonus, Deduction

if TYPE_CHECKING:
    from workforce_payroll.config import Settings


@dataclass(frozen=True)
class GrossPayResult:
    """Simple (non-overtime) pay result used by the batch path."""

    hours_worked: Decimal
    task_pay: Decimal
    approved_expenses: Decimal
    gross_pay: Decimal


@dataclass
class PayrollBreakdown:
    """Full pay breakdown for one employee and period."""

    base_hours: Decimal
    overtime_hours: Decimal
    task_pay: Decimal
    overtime_pay: Decimal
    approved_expenses: Decimal
    bonuses: list[Bonus]
    allowances: list[Allowance]
    total_bonuses: Decimal
    total_allowances: Decimal
    gross_pay: Decimal
    deductions: list[Deduction]
    total_deductions: Decimal
    net_pay: Decimal

    @property
    def tax_deduction(self) -> Deduction | None:
        for deduction in self.deductions:
            if deduction.is_tax:
                return deduction
        return None


@dataclass
class CalculationOptions:
    """Per-run knobs for the overtime-aware batch calculation.

    Per-employee line items are keyed by employee id.
    """

    standard_hours: Decimal = Decimal("40")
    overtime_multiplier: Decimal = Decimal("1.5")
    tax_rate: Decimal = Decimal("0")
    custom_deductions: dict[UUID, list[Deduction]] = field(default_factory=dict)
    bonuses: dict[UUID, list[Bonus]] = field(default_factory=dict)
    allowances: dict[UUID, list[Allowance]] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> CalculationOptions:
        return cls(
            standard_hours=settings.standard_hours,
            overtime_multiplier=settings.overtime_multiplier,
            tax_rate=settings.tax_rate,
        )


@dataclass
class EmployeeCalculationContext:
    """Source facts gathered for one employee before anything is written."""

    employee_id: UUID
    period_start: date
    period_end: date
    idempotency_key: str
    # Task ids already paid on an earlier record for this employee and project
    consumed_task_ids: set[str] = field(default_factory=set)

    hours_worked: Decimal = Decimal("0")
    hourly_rate: Decimal = Decimal("0")
    approved_expenses: Decimal = Decimal("0")
    task_ids: list[UUID] = field(default_factory=list)
    expense_ids: list[UUID] = field(default_factory=list)

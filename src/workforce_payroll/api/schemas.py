"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from workforce_payroll.calculators.line_builder import LineItemBuilder
from workforce_payroll.calculators.types import CalculationOptions
from workforce_payroll.config import Settings
from workforce_payroll.line_items import DeductionType
from workforce_payroll.models import PaymentMode, PayoutMethod
from workforce_payroll.services.pay_cycle import PayCycleFrequency


# ============================================================================
# Pay cycle schemas
# ============================================================================


class PayCycleConfigure(BaseModel):
    """Schema for configuring an organization's pay cycle."""

    frequency: PayCycleFrequency
    policy: str = "default"


class PayCycleResponse(BaseModel):
    """Schema for pay cycle response."""

    model_config = ConfigDict(from_attributes=True)

    organization_id: UUID
    policy: str
    frequency: str
    next_cycle_start: date
    next_cycle_end: date
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ============================================================================
# Rate schemas
# ============================================================================


class EmployeeRateCreate(BaseModel):
    """Schema for adding an effective-dated rate."""

    actor_id: UUID
    hourly_rate: Decimal = Field(gt=0)
    effective_from: date
    payment_mode: PaymentMode = PaymentMode.HOURLY


class EmployeeRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rate_id: UUID
    employee_id: UUID
    payment_mode: str
    hourly_rate: Decimal | None = None
    effective_from: date
    updated_by: UUID | None = None


# ============================================================================
# Calculation schemas
# ============================================================================


class BonusPayload(BaseModel):
    amount: Decimal = Field(ge=0)
    type: str = "performance"
    reason: str = ""


class AllowancePayload(BaseModel):
    name: str
    amount: Decimal = Field(ge=0)


class DeductionPayload(BaseModel):
    type: DeductionType = DeductionType.OTHER
    amount: Decimal = Field(ge=0)
    reason: str = ""


class CalculationOptionsPayload(BaseModel):
    """Overtime, tax and per-employee line items for a calculation run."""

    standard_hours: Decimal | None = Field(default=None, ge=0)
    overtime_multiplier: Decimal | None = Field(default=None, ge=0)
    tax_rate: Decimal | None = Field(default=None, ge=0, le=1)
    custom_deductions: dict[UUID, list[DeductionPayload]] = Field(default_factory=dict)
    bonuses: dict[UUID, list[BonusPayload]] = Field(default_factory=dict)
    allowances: dict[UUID, list[AllowancePayload]] = Field(default_factory=dict)

    def to_options(self, settings: Settings) -> CalculationOptions:
        """Options for a run; unset knobs fall back to the configured defaults."""
        defaults = CalculationOptions.from_settings(settings)
        return CalculationOptions(
            standard_hours=(
                self.standard_hours
                if self.standard_hours is not None
                else defaults.standard_hours
            ),
            overtime_multiplier=(
                self.overtime_multiplier
                if self.overtime_multiplier is not None
                else defaults.overtime_multiplier
            ),
            tax_rate=self.tax_rate if self.tax_rate is not None else defaults.tax_rate,
            custom_deductions={
                employee_id: [
                    LineItemBuilder.create_deduction(item.type, item.amount, reason=item.reason)
                    for item in items
                ]
                for employee_id, items in self.custom_deductions.items()
            },
            bonuses={
                employee_id: [
                    LineItemBuilder.create_bonus(
                        item.amount, bonus_type=item.type, reason=item.reason
                    )
                    for item in items
                ]
                for employee_id, items in self.bonuses.items()
            },
            allowances={
                employee_id: [
                    LineItemBuilder.create_allowance(item.name, item.amount) for item in items
                ]
                for employee_id, items in self.allowances.items()
            },
        )


class CalculateRequest(BaseModel):
    """Schema for running a project calculation."""

    period_start: date
    period_end: date
    actor_id: UUID
    options: CalculationOptionsPayload | None = None


# ============================================================================
# Payroll record schemas
# ============================================================================


class PayrollRecordResponse(BaseModel):
    """Schema for payroll record response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    organization_id: UUID
    employee_id: UUID
    project_id: UUID
    period_start: date
    period_end: date
    hours_worked: Decimal
    hourly_rate: Decimal
    task_pay: Decimal
    approved_expenses: Decimal
    overtime_hours: Decimal | None = None
    overtime_pay: Decimal | None = None
    bonuses_json: list[dict[str, Any]] = Field(default_factory=list)
    allowances_json: list[dict[str, Any]] = Field(default_factory=list)
    gross_pay: Decimal
    deductions_json: list[dict[str, Any]] = Field(default_factory=list)
    net_pay: Decimal
    generated_by: UUID
    generated_at: datetime
    task_ids_processed: list[str] = Field(default_factory=list)
    expense_ids_processed: list[str] = Field(default_factory=list)
    payroll_status: str
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    approver_notes: str | None = None
    locked: bool = False
    payroll_run_id: UUID | None = None


class CalculateResponse(BaseModel):
    """Schema for calculation response."""

    project_id: UUID
    period_start: date
    period_end: date
    records_created: int
    records: list[PayrollRecordResponse]


# ============================================================================
# Approval schemas
# ============================================================================


class ApprovalRequest(BaseModel):
    """Schema for approval request."""

    admin_id: UUID
    employee_id: UUID
    notes: str | None = None


class RejectionRequest(BaseModel):
    """Schema for rejection request."""

    admin_id: UUID
    employee_id: UUID
    reason: str = Field(min_length=1)


# ============================================================================
# Pay run schemas
# ============================================================================


class PayrollRunRequest(BaseModel):
    """Schema for paying out approved payroll in a window."""

    period_start: date
    period_end: date
    admin_id: UUID
    method: PayoutMethod = PayoutMethod.MANUAL


class PayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payout_id: UUID
    payroll_run_id: UUID
    payroll_record_id: UUID
    employee_id: UUID
    amount: Decimal
    method: str
    status: str
    failure_reason: str | None = None
    processed_at: datetime | None = None


class PayrollRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    organization_id: UUID
    period_start: date
    period_end: date
    total_amount: Decimal
    method: str
    status: str
    created_by: UUID
    created_at: datetime
    payouts: list[PayoutResponse] = Field(default_factory=list)
    skipped_employee_ids: list[UUID] = Field(default_factory=list)


class PayoutSuccessRequest(BaseModel):
    account_suffix: str | None = Field(default=None, max_length=8)


class PayoutFailureRequest(BaseModel):
    reason: str = Field(min_length=1)


# ============================================================================
# Reporting schemas
# ============================================================================


class PayrollSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_amount: Decimal
    employee_count: int
    average_salary: Decimal


class EmployeeProjectPayrollResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str
    total_hours: Decimal
    total_task_pay: Decimal
    total_approved_expenses: Decimal
    grand_total_pay: Decimal
    record_count: int


class ProjectPayrollSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_id: UUID
    total_cost: Decimal
    total_hours: Decimal
    total_task_pay: Decimal
    total_expenses_reimbursed: Decimal
    employees: list[EmployeeProjectPayrollResponse]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None

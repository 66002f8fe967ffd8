"""Pay cycle configuration and payroll record models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from workforce_payroll.line_items import (
    Allowance,
    Bonus,
    Deduction,
    line_item_from_dict,
    sum_amounts,
)
from workforce_payroll.models.base import Base, TimestampMixin


# ===== Pay Cycles =====


class PayCycleConfig(Base, TimestampMixin):
    """Upcoming pay cycle window for an organization (one per policy)."""

    __tablename__ = "pay_cycle_config"

    pay_cycle_config_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    policy: Mapped[str] = mapped_column(String, nullable=False, default="default")
    frequency: Mapped[str] = mapped_column(String, nullable=False)
    next_cycle_start: Mapped[date] = mapped_column(Date, nullable=False)
    next_cycle_end: Mapped[date] = mapped_column(Date, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "policy", name="pay_cycle_config_org_policy_unique"),
        CheckConstraint(
            "frequency IN ('weekly', 'biweekly', 'monthly')",
            name="pay_cycle_config_frequency_check",
        ),
        CheckConstraint(
            "next_cycle_end >= next_cycle_start",
            name="pay_cycle_config_dates_check",
        ),
    )


# ===== Payroll Records =====


class PayrollRecord(Base):
    """Pay owed to one employee for one project over one pay period.

    Monetary fields are written once by the calculation engine. Only the
    approval workflow touches the status/approval fields afterwards.
    """

    __tablename__ = "payroll_record"

    payroll_record_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.user_id"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("project.project_id"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Time and earnings
    hours_worked: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    task_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    approved_expenses: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    overtime_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    overtime_pay: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    bonuses_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    allowances_json: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    deductions_json: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    net_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Provenance
    generated_by: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    task_ids_processed: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    expense_ids_processed: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    idempotency_key: Mapped[str] = mapped_column(String(64), nullable=False)

    # Approval
    payroll_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approver_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Payout; a locked record belongs to a pay run and is never paid again
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payroll_run_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("payroll_run.payroll_run_id"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="payroll_record_idempotency_key_unique"),
        CheckConstraint(
            "payroll_status IN ('pending', 'approved', 'rejected')",
            name="payroll_record_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="payroll_record_dates_check"),
    )

    @property
    def bonuses(self) -> list[Bonus]:
        return [line_item_from_dict(d) for d in self.bonuses_json or []]  # type: ignore[misc]

    @property
    def allowances(self) -> list[Allowance]:
        return [line_item_from_dict(d) for d in self.allowances_json or []]  # type: ignore[misc]

    @property
    def deductions(self) -> list[Deduction]:
        return [line_item_from_dict(d) for d in self.deductions_json or []]  # type: ignore[misc]

    @property
    def total_bonuses(self) -> Decimal:
        return sum_amounts(self.bonuses)

    @property
    def total_allowances(self) -> Decimal:
        return sum_amounts(self.allowances)

    @property
    def total_deductions(self) -> Decimal:
        return sum_amounts(self.deductions)


# ===== Pay Runs =====


class PayoutMethod(str, Enum):
    """How a pay run is disbursed."""

    AUTO = "auto"  # handed to a payment provider, settled later
    MANUAL = "manual"  # paid by bank transfer from the exported CSV


class PayrollRunStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PayrollRun(Base, TimestampMixin):
    """One disbursement of approved payroll records for an organization."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    created_by: Mapped[UUID] = mapped_column(Uuid, ForeignKey("app_user.user_id"), nullable=False)

    __table_args__ = (
        CheckConstraint("method IN ('auto', 'manual')", name="payroll_run_method_check"),
        CheckConstraint("status IN ('pending', 'paid')", name="payroll_run_status_check"),
        CheckConstraint("period_end >= period_start", name="payroll_run_dates_check"),
    )


class Payout(Base, TimestampMixin):
    """Net pay of one payroll record sent to the employee's bank account."""

    __tablename__ = "payout"

    payout_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_run_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_record_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("payroll_record.payroll_record_id"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.user_id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_record_id", name="payout_payroll_record_unique"),
        CheckConstraint(
            "status IN ('pending', 'success', 'failed')",
            name="payout_status_check",
        ),
    )

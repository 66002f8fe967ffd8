"""Operational facts consumed by payroll: projects, tasks and expenses."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from workforce_payroll.models.base import Base, TimestampMixin


class TaskStatus(str, Enum):
    """Task lifecycle values."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    NEEDS_REVIEW = "needs-review"
    VERIFIED = "verified"
    REJECTED = "rejected"


# Statuses whose recorded time is payable
PAYABLE_TASK_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.VERIFIED.value)


class Project(Base, TimestampMixin):
    """Project that tasks and expenses are booked against."""

    __tablename__ = "project"

    project_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)


class Task(Base, TimestampMixin):
    """A unit of work with recorded elapsed time."""

    __tablename__ = "task"

    task_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.user_id"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(String, nullable=False, default=TaskStatus.PENDING.value)
    elapsed_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in-progress', 'paused', 'completed', "
            "'needs-review', 'verified', 'rejected')",
            name="task_status_check",
        ),
        CheckConstraint("elapsed_time_seconds >= 0", name="task_elapsed_non_negative"),
    )


class EmployeeExpense(Base, TimestampMixin):
    """An expense logged by an employee and reimbursed through payroll."""

    __tablename__ = "employee_expense"

    expense_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.user_id"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    expense_type: Mapped[str] = mapped_column(String, nullable=False, default="other")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Set in the same unit of work that creates the payroll record consuming it
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "expense_type IN ('travel', 'food', 'tools', 'other')",
            name="employee_expense_type_check",
        ),
        CheckConstraint("amount >= 0", name="employee_expense_amount_non_negative"),
    )

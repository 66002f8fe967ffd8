"""Organization, user, and pay rate models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from workforce_payroll.models.base import Base, TimestampMixin


class UserRole(str, Enum):
    """Roles a user can hold inside an organization."""

    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    EMPLOYEE = "employee"


class PaymentMode(str, Enum):
    """How an employee's pay is configured."""

    HOURLY = "hourly"
    SALARIED = "salaried"


class Organization(Base, TimestampMixin):
    """Tenant organization."""

    __tablename__ = "organization"

    organization_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)


class User(Base, TimestampMixin):
    """A member of an organization (admin, supervisor or employee)."""

    __tablename__ = "app_user"

    user_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default=UserRole.EMPLOYEE.value)

    # Notification channel
    phone_number: Mapped[str | None] = mapped_column(String, nullable=True)
    whatsapp_opt_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Payout destination
    bank_account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_ifsc: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'supervisor', 'employee')",
            name="app_user_role_check",
        ),
    )

    @property
    def has_bank_details(self) -> bool:
        return bool(self.bank_account_number and self.bank_ifsc)

    @property
    def can_manage_payroll(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.SUPERVISOR.value)


class EmployeeRate(Base, TimestampMixin):
    """Effective-dated pay rate configuration for an employee."""

    __tablename__ = "employee_rate"

    rate_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_mode: Mapped[str] = mapped_column(
        String, nullable=False, default=PaymentMode.HOURLY.value
    )
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    updated_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "payment_mode IN ('hourly', 'salaried')",
            name="employee_rate_mode_check",
        ),
        CheckConstraint(
            "hourly_rate IS NULL OR hourly_rate >= 0",
            name="employee_rate_non_negative",
        ),
    )

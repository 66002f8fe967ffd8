"""ORM models."""

from workforce_payroll.models.base import Base, TimestampMixin
from workforce_payroll.models.organization import (
    EmployeeRate,
    Organization,
    PaymentMode,
    User,
    UserRole,
)
from workforce_payroll.models.payroll import (
    PayCycleConfig,
    Payout,
    PayoutMethod,
    PayoutStatus,
    PayrollRecord,
    PayrollRun,
    PayrollRunStatus,
)
from workforce_payroll.models.work import (
    PAYABLE_TASK_STATUSES,
    EmployeeExpense,
    Project,
    Task,
    TaskStatus,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "EmployeeRate",
    "Organization",
    "PaymentMode",
    "User",
    "UserRole",
    "PayCycleConfig",
    "PayrollRecord",
    "PayrollRun",
    "PayrollRunStatus",
    "Payout",
    "PayoutMethod",
    "PayoutStatus",
    "PAYABLE_TASK_STATUSES",
    "EmployeeExpense",
    "Project",
    "Task",
    "TaskStatus",
]

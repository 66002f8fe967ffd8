"""Payroll services."""

from workforce_payroll.services.analytics import PayrollAnalytics, PayrollSummary
from workforce_payroll.services.approval import PayrollApproval
from workforce_payroll.services.notifications import (
    LoggingNotificationSender,
    NotificationSender,
    WhatsAppNotificationSender,
)
from workforce_payroll.services.pay_cycle import (
    CycleWindow,
    PayCycleFrequency,
    PayCycleManager,
    get_next_cycle_dates,
)
from workforce_payroll.services.payouts import BankExport, PayoutService, PayrollRunResult
from workforce_payroll.services.payslip import DocumentRenderer, PdfPayslipRenderer
from workforce_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollStateMachine,
    PayrollStatus,
)

__all__ = [
    "PayrollAnalytics",
    "PayrollSummary",
    "PayrollApproval",
    "LoggingNotificationSender",
    "NotificationSender",
    "WhatsAppNotificationSender",
    "CycleWindow",
    "PayCycleFrequency",
    "PayCycleManager",
    "get_next_cycle_dates",
    "BankExport",
    "PayoutService",
    "PayrollRunResult",
    "DocumentRenderer",
    "PdfPayslipRenderer",
    "InvalidTransitionError",
    "PayrollStateMachine",
    "PayrollStatus",
]

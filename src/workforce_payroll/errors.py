"""Typed errors raised by the payroll core.

Every public operation either returns its result or raises one of these.
The API layer maps them onto HTTP status codes.
"""

from __future__ import annotations


class PayrollError(Exception):
    """Base class for payroll core errors."""


class ValidationError(PayrollError):
    """Malformed input, rejected before anything is written."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid {field}: {message}")


class ConfigurationError(PayrollError):
    """Missing or unusable configuration (for example an employee's pay rate)."""


class StoreError(PayrollError):
    """A read or write against the persistent store failed."""

    def __init__(self, step: str, cause: Exception | None = None):
        self.step = step
        self.cause = cause
        msg = f"Store failure during {step}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class NotificationError(PayrollError):
    """The notification sender could not deliver a message."""


class NotFoundError(PayrollError):
    """Requested entity does not exist."""


class PayrollRecordNotFoundError(NotFoundError):
    """Raised when a payroll record cannot be found for an organization."""

    def __init__(self, organization_id: object, payroll_id: object):
        self.organization_id = organization_id
        self.payroll_id = payroll_id
        super().__init__(
            f"Payroll record {payroll_id} not found for organization {organization_id}"
        )


class ConflictError(PayrollError):
    """The operation conflicts with the current stored state."""


class DuplicatePayrollRunError(ConflictError):
    """Another calculation run already holds or consumed this project period."""

    def __init__(self, project_id: object, period_start: object, period_end: object, reason: str):
        self.project_id = project_id
        self.period_start = period_start
        self.period_end = period_end
        self.reason = reason
        super().__init__(
            f"Payroll run for project {project_id} ({period_start} - {period_end}) "
            f"conflicts with a concurrent run: {reason}"
        )

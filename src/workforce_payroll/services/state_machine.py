"""Payroll record state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from workforce_payroll.errors import ConflictError


class PayrollStatus(str, Enum):
    """Payroll record status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InvalidTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def _status_value(status: str) -> str:
    return status.value if isinstance(status, PayrollStatus) else status


class PayrollStateMachine:
    """State machine for payroll record status transitions.

    Allowed transitions:
    - pending → approved
    - pending → rejected

    Both targets are terminal. Correcting a finalized record means
    generating a new record for a new period.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollStatus.PENDING.value: [PayrollStatus.APPROVED.value, PayrollStatus.REJECTED.value],
        PayrollStatus.APPROVED.value: [],  # Terminal state
        PayrollStatus.REJECTED.value: [],  # Terminal state
    }

    TERMINAL = frozenset({PayrollStatus.APPROVED.value, PayrollStatus.REJECTED.value})

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(_status_value(from_status), [])
        return _status_value(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = "record is already final" if cls.is_terminal(from_status) else None
            raise InvalidTransitionError(
                _status_value(from_status), _status_value(to_status), reason
            )

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return _status_value(status) in cls.TERMINAL

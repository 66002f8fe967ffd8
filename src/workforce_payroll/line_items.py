"""Financial line items carried on a payroll record.

Each kind of line item is its own type carrying only the fields that kind
needs. They are persisted as JSON lists tagged with ``kind``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Union

from workforce_payroll.errors import ValidationError

CENTS = Decimal("0.01")


def round2(amount: Decimal | int | float | str) -> Decimal:
    """Round a monetary amount to 2 decimal places (half-up)."""
    return to_decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | int | float | str, field: str = "amount") -> Decimal:
    """Coerce a number to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(field, "must be a number")
    try:
        # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(field, f"{value!r} is not a number") from e


def non_negative(value: Decimal | int | float | str, field: str) -> Decimal:
    """Coerce to Decimal, rejecting negative amounts."""
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(field, f"must not be negative (got {amount})")
    return amount


class DeductionType(str, Enum):
    """Deduction categories."""

    TAX = "tax"
    LOAN = "loan"
    ADVANCE = "advance"
    OTHER = "other"


@dataclass(frozen=True)
class Bonus:
    """One-off earning added to gross pay."""

    KIND: ClassVar[str] = "bonus"

    amount: Decimal
    bonus_type: str = "performance"
    reason: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", non_negative(self.amount, "bonus.amount"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.KIND,
            "type": self.bonus_type,
            "reason": self.reason,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class Allowance:
    """Recurring or ad hoc allowance added to gross pay."""

    KIND: ClassVar[str] = "allowance"

    name: str
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", non_negative(self.amount, "allowance.amount"))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.KIND, "name": self.name, "amount": str(self.amount)}


@dataclass(frozen=True)
class Deduction:
    """Amount withheld from gross pay."""

    KIND: ClassVar[str] = "deduction"

    deduction_type: DeductionType
    amount: Decimal
    reason: str = ""

    def __post_init__(self) -> None:
        try:
            deduction_type = DeductionType(self.deduction_type)
        except ValueError as e:
            raise ValidationError(
                "deduction.type", f"unknown deduction type {self.deduction_type!r}"
            ) from e
        object.__setattr__(self, "deduction_type", deduction_type)
        object.__setattr__(self, "amount", non_negative(self.amount, "deduction.amount"))

    @property
    def is_tax(self) -> bool:
        return self.deduction_type == DeductionType.TAX

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.KIND,
            "type": self.deduction_type.value,
            "reason": self.reason,
            "amount": str(self.amount),
        }


LineItem = Union[Bonus, Allowance, Deduction]


def line_item_from_dict(data: dict[str, Any]) -> LineItem:
    """Rebuild a line item from its tagged JSON form."""
    kind = data.get("kind")
    if kind == Bonus.KIND:
        return Bonus(
            amount=data["amount"],
            bonus_type=data.get("type", "performance"),
            reason=data.get("reason", ""),
        )
    if kind == Allowance.KIND:
        return Allowance(name=data.get("name", ""), amount=data["amount"])
    if kind == Deduction.KIND:
        return Deduction(
            deduction_type=data.get("type", DeductionType.OTHER.value),
            amount=data["amount"],
            reason=data.get("reason", ""),
        )
    raise ValidationError("line_item.kind", f"unknown line item kind {kind!r}")


def sum_amounts(items: list[Bonus] | list[Allowance] | list[Deduction]) -> Decimal:
    """Sum line item amounts, each rounded to cents first."""
    return round2(sum((round2(item.amount) for item in items), Decimal("0")))

"""Line item builder with rounding rules and idempotency keys."""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from workforce_payroll.line_items import (
    Allowance,
    Bonus,
    Deduction,
    DeductionType,
    round2,
    sum_amounts,
    to_decimal,
)


class LineItemBuilder:
    """Builds payroll line items and checks record arithmetic.

    Rounding:
    - Every monetary sub-total is rounded to cents (half-up) before it is
      summed into a larger total
    - Hours are rounded to 2 decimals when converted from seconds

    Record invariants:
    - GROSS = task pay + overtime pay + Σ(bonuses) + Σ(allowances)
    - NET = GROSS - Σ(deductions) + approved expenses
    """

    @staticmethod
    def seconds_to_hours(total_seconds: int) -> Decimal:
        """Convert recorded elapsed seconds to hours (2 decimals)."""
        return round2(Decimal(total_seconds) / Decimal(3600))

    @staticmethod
    def create_bonus(
        amount: Decimal | int | float | str,
        bonus_type: str = "performance",
        reason: str = "",
    ) -> Bonus:
        return Bonus(amount=round2(to_decimal(amount, "bonus.amount")), bonus_type=bonus_type, reason=reason)

    @staticmethod
    def create_allowance(name: str, amount: Decimal | int | float | str) -> Allowance:
        return Allowance(name=name, amount=round2(to_decimal(amount, "allowance.amount")))

    @staticmethod
    def create_deduction(
        deduction_type: DeductionType | str,
        amount: Decimal | int | float | str,
        reason: str = "",
    ) -> Deduction:
        return Deduction(
            deduction_type=deduction_type,
            amount=round2(to_decimal(amount, "deduction.amount")),
            reason=reason,
        )

    @staticmethod
    def create_tax_deduction(gross_pay: Decimal, tax_rate: Decimal) -> Deduction:
        """Create the flat-rate income tax deduction for a gross amount."""
        return Deduction(
            deduction_type=DeductionType.TAX,
            amount=round2(gross_pay * tax_rate),
            reason="Income Tax",
        )

    @staticmethod
    def serialize(items: list[Bonus] | list[Allowance] | list[Deduction]) -> list[dict[str, Any]]:
        """Serialize line items to their tagged JSON form."""
        return [item.to_dict() for item in items]

    @staticmethod
    def compute_gross(
        task_pay: Decimal,
        overtime_pay: Decimal,
        bonuses: list[Bonus],
        allowances: list[Allowance],
    ) -> Decimal:
        return round2(
            round2(task_pay) + round2(overtime_pay) + sum_amounts(bonuses) + sum_amounts(allowances)
        )

    @staticmethod
    def compute_net(
        gross_pay: Decimal,
        deductions: list[Deduction],
        approved_expenses: Decimal,
    ) -> Decimal:
        return round2(round2(gross_pay) - sum_amounts(deductions) + round2(approved_expenses))

    @staticmethod
    def compute_idempotency_key(
        project_id: UUID,
        period_start: date,
        period_end: date,
        employee_id: UUID,
    ) -> str:
        """Compute the deterministic key for one employee's record in a period."""
        canonical = {
            "project_id": str(project_id),
            "period_start": period_start.isoformat(),
            "period_end": period_end.isoformat(),
            "employee_id": str(employee_id),
        }
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()

    @staticmethod
    def validate_totals(
        task_pay: Decimal,
        overtime_pay: Decimal | None,
        bonuses: list[Bonus],
        allowances: list[Allowance],
        gross_pay: Decimal,
        deductions: list[Deduction],
        approved_expenses: Decimal,
        net_pay: Decimal,
    ) -> list[str]:
        """Check a record's gross/net arithmetic.

        Returns list of error messages (empty if consistent).
        """
        errors: list[str] = []
        expected_gross = LineItemBuilder.compute_gross(
            task_pay, overtime_pay or Decimal("0"), bonuses, allowances
        )
        if expected_gross != gross_pay:
            errors.append(f"Gross mismatch: record shows {gross_pay}, components sum to {expected_gross}")

        expected_net = LineItemBuilder.compute_net(gross_pay, deductions, approved_expenses)
        if expected_net != net_pay:
            errors.append(f"Net mismatch: record shows {net_pay}, components give {expected_net}")

        return errors

"""Payroll calculation engine."""

from workforce_payroll.calculators.engine import PayrollCalculationEngine
from workforce_payroll.calculators.line_builder import LineItemBuilder
from workforce_payroll.calculators.rate_resolver import RateNotFoundError, RateResolver
from workforce_payroll.calculators.types import (
    CalculationOptions,
    GrossPayResult,
    PayrollBreakdown,
)

__all__ = [
    "PayrollCalculationEngine",
    "LineItemBuilder",
    "RateNotFoundError",
    "RateResolver",
    "CalculationOptions",
    "GrossPayResult",
    "PayrollBreakdown",
]

"""API routes."""

from workforce_payroll.api.routes.health import router as health_router
from workforce_payroll.api.routes.pay_cycles import router as pay_cycles_router
from workforce_payroll.api.routes.payroll import router as payroll_router

__all__ = ["health_router", "pay_cycles_router", "payroll_router"]

"""Payroll API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError

from workforce_payroll.api.dependencies import (
    AppClock,
    AppSettings,
    DbSession,
    Notifier,
    OrganizationId,
)
from workforce_payroll.api.schemas import (
    ApprovalRequest,
    CalculateRequest,
    CalculateResponse,
    EmployeeRateCreate,
    EmployeeRateResponse,
    ErrorResponse,
    PayoutFailureRequest,
    PayoutResponse,
    PayoutSuccessRequest,
    PayrollRecordResponse,
    PayrollRunRequest,
    PayrollRunResponse,
    PayrollSummaryResponse,
    ProjectPayrollSummaryResponse,
    RejectionRequest,
)
from workforce_payroll.calculators import PayrollCalculationEngine, RateResolver
from workforce_payroll.errors import StoreError
from workforce_payroll.models import User
from workforce_payroll.services.analytics import PayrollAnalytics
from workforce_payroll.services.approval import PayrollApproval
from workforce_payroll.services.payouts import PayoutService
from workforce_payroll.services.payslip import PdfPayslipRenderer

router = APIRouter(tags=["payroll"])


# ============================================================================
# Calculation
# ============================================================================


@router.post(
    "/projects/{project_id}/payroll",
    response_model=CalculateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def calculate_project_payroll(
    db: DbSession,
    organization_id: OrganizationId,
    clock: AppClock,
    settings: AppSettings,
    project_id: Annotated[UUID, Path()],
    payload: CalculateRequest,
) -> CalculateResponse:
    """Create pending payroll records for every employee on a project period."""
    engine = PayrollCalculationEngine(db, clock=clock, settings=settings)
    records = await engine.calculate_for_project(
        organization_id,
        project_id,
        payload.period_start,
        payload.period_end,
        payload.actor_id,
        options=payload.options.to_options(settings) if payload.options is not None else None,
    )
    return CalculateResponse(
        project_id=project_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
        records_created=len(records),
        records=[PayrollRecordResponse.model_validate(r) for r in records],
    )


@router.post(
    "/employees/{employee_id}/rates",
    response_model=EmployeeRateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def add_employee_rate(
    db: DbSession,
    organization_id: OrganizationId,
    employee_id: Annotated[UUID, Path()],
    payload: EmployeeRateCreate,
) -> EmployeeRateResponse:
    """Add an effective-dated rate for an employee."""
    rate = await RateResolver(db).add_employee_rate(
        organization_id,
        payload.actor_id,
        employee_id,
        payload.hourly_rate,
        payload.effective_from,
        payload.payment_mode,
    )
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreError(f"rate commit for employee {employee_id}", e) from e
    return EmployeeRateResponse.model_validate(rate)


# ============================================================================
# Reporting
# ============================================================================


@router.get(
    "/payroll/summary/monthly",
    response_model=PayrollSummaryResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_monthly_summary(
    db: DbSession,
    organization_id: OrganizationId,
    month: Annotated[int, Query(ge=1, le=12)],
    year: Annotated[int, Query(ge=1970)],
) -> PayrollSummaryResponse:
    """Approved payroll totals for a calendar month."""
    summary = await PayrollAnalytics(db).get_monthly_summary(organization_id, month, year)
    return PayrollSummaryResponse.model_validate(summary)


@router.get(
    "/payroll/export/bank",
    responses={400: {"model": ErrorResponse}},
)
async def export_bank_transfers(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    period_start: Annotated[date, Query()],
    period_end: Annotated[date, Query()],
) -> Response:
    """CSV of approved net pay per employee for manual bank transfer."""
    export = await PayoutService(db, notifier).export_approved(
        organization_id, period_start, period_end
    )
    return Response(
        content=export.csv,
        media_type="text/csv",
        headers={
            "Content-Disposition": (
                f'attachment; filename="payroll-{period_start.isoformat()}.csv"'
            ),
            "X-Total-Amount": f"{export.total_amount:.2f}",
        },
    )


@router.get(
    "/projects/{project_id}/payroll/summary",
    response_model=ProjectPayrollSummaryResponse,
)
async def get_project_summary(
    db: DbSession,
    organization_id: OrganizationId,
    project_id: Annotated[UUID, Path()],
) -> ProjectPayrollSummaryResponse:
    """Payroll cost of a project with a per-employee breakdown."""
    summary = await PayrollAnalytics(db).get_project_summary(organization_id, project_id)
    return ProjectPayrollSummaryResponse.model_validate(summary)


@router.get(
    "/employees/{employee_id}/payroll",
    response_model=list[PayrollRecordResponse],
)
async def list_employee_payroll(
    db: DbSession,
    organization_id: OrganizationId,
    employee_id: Annotated[UUID, Path()],
) -> list[PayrollRecordResponse]:
    """An employee's payroll history, newest first."""
    records = await PayrollAnalytics(db).list_records_for_employee(organization_id, employee_id)
    return [PayrollRecordResponse.model_validate(r) for r in records]


# ============================================================================
# Records and approval
# ============================================================================


@router.get(
    "/payroll/{payroll_id}",
    response_model=PayrollRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_record(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    payroll_id: Annotated[UUID, Path()],
) -> PayrollRecordResponse:
    """Get a specific payroll record by ID."""
    record = await PayrollApproval(db, notifier).get_record(organization_id, payroll_id)
    return PayrollRecordResponse.model_validate(record)


@router.post(
    "/payroll/{payroll_id}/approve",
    response_model=PayrollRecordResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def approve_payroll(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    clock: AppClock,
    payroll_id: Annotated[UUID, Path()],
    payload: ApprovalRequest,
) -> PayrollRecordResponse:
    """Approve a pending payroll record."""
    record = await PayrollApproval(db, notifier, clock=clock).approve(
        organization_id,
        payroll_id,
        payload.admin_id,
        payload.employee_id,
        notes=payload.notes,
    )
    return PayrollRecordResponse.model_validate(record)


@router.post(
    "/payroll/{payroll_id}/reject",
    response_model=PayrollRecordResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def reject_payroll(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    clock: AppClock,
    payroll_id: Annotated[UUID, Path()],
    payload: RejectionRequest,
) -> PayrollRecordResponse:
    """Reject a pending payroll record with a reason."""
    record = await PayrollApproval(db, notifier, clock=clock).reject(
        organization_id,
        payroll_id,
        payload.admin_id,
        payload.employee_id,
        payload.reason,
    )
    return PayrollRecordResponse.model_validate(record)


@router.get(
    "/payroll/{payroll_id}/payslip",
    responses={404: {"model": ErrorResponse}},
)
async def download_payslip(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    settings: AppSettings,
    payroll_id: Annotated[UUID, Path()],
) -> Response:
    """Render the payslip for a payroll record."""
    record = await PayrollApproval(db, notifier).get_record(organization_id, payroll_id)
    try:
        employee = await db.get(User, record.employee_id)
    except SQLAlchemyError as e:
        raise StoreError(f"employee lookup {record.employee_id}", e) from e
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )

    renderer = PdfPayslipRenderer()
    return Response(
        content=renderer.render(record, settings, employee.display_name),
        media_type=renderer.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{renderer.filename(record)}"'
        },
    )


# ============================================================================
# Pay runs and payouts
# ============================================================================


@router.post(
    "/payroll/runs",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def run_payroll(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    clock: AppClock,
    settings: AppSettings,
    payload: PayrollRunRequest,
) -> PayrollRunResponse:
    """Pay out approved payroll in a window and lock the paid records."""
    result = await PayoutService(db, notifier, clock=clock, settings=settings).run_payroll(
        organization_id,
        payload.period_start,
        payload.period_end,
        payload.admin_id,
        payload.method,
    )
    response = PayrollRunResponse.model_validate(result.run)
    response.payouts = [PayoutResponse.model_validate(p) for p in result.payouts]
    response.skipped_employee_ids = result.skipped_employee_ids
    return response


@router.post(
    "/payouts/{payout_id}/success",
    response_model=PayoutResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def mark_payout_success(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    clock: AppClock,
    payout_id: Annotated[UUID, Path()],
    payload: PayoutSuccessRequest,
) -> PayoutResponse:
    """Record a completed transfer."""
    payout = await PayoutService(db, notifier, clock=clock).mark_payout_success(
        organization_id, payout_id, payload.account_suffix
    )
    return PayoutResponse.model_validate(payout)


@router.post(
    "/payouts/{payout_id}/failure",
    response_model=PayoutResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def mark_payout_failed(
    db: DbSession,
    organization_id: OrganizationId,
    notifier: Notifier,
    clock: AppClock,
    payout_id: Annotated[UUID, Path()],
    payload: PayoutFailureRequest,
) -> PayoutResponse:
    """Record a failed transfer with its reason."""
    payout = await PayoutService(db, notifier, clock=clock).mark_payout_failed(
        organization_id, payout_id, payload.reason
    )
    return PayoutResponse.model_validate(payout)

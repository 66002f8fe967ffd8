"""Pay cycle API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from workforce_payroll.api.dependencies import AppClock, DbSession, OrganizationId
from workforce_payroll.api.schemas import ErrorResponse, PayCycleConfigure, PayCycleResponse
from workforce_payroll.services.pay_cycle import DEFAULT_POLICY, PayCycleManager

router = APIRouter(prefix="/pay-cycles", tags=["pay-cycles"])


@router.put(
    "",
    response_model=PayCycleResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def configure_pay_cycle(
    db: DbSession,
    organization_id: OrganizationId,
    clock: AppClock,
    payload: PayCycleConfigure,
) -> PayCycleResponse:
    """Create or advance the organization's pay cycle."""
    manager = PayCycleManager(db, clock=clock)
    config = await manager.configure_pay_cycle(
        organization_id, payload.frequency, policy=payload.policy
    )
    return PayCycleResponse.model_validate(config)


@router.get(
    "",
    response_model=PayCycleResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_cycle(
    db: DbSession,
    organization_id: OrganizationId,
    policy: Annotated[str, Query()] = DEFAULT_POLICY,
) -> PayCycleResponse:
    """Get the organization's upcoming pay cycle."""
    config = await PayCycleManager(db).get_config(organization_id, policy)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pay cycle not configured",
        )
    return PayCycleResponse.model_validate(config)

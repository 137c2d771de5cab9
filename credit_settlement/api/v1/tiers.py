"""GET/PUT /v1/tiers/global - system-wide discount and interest tables"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from credit_settlement.api.dependencies import get_request_id
from credit_settlement.api.v1.errors import to_http_exception
from credit_settlement.api.v1.schemas import GlobalTierConfigSchema
from credit_settlement.domain.exceptions import DomainException
from credit_settlement.infrastructure.database.session import get_db
from credit_settlement.services.policies import PolicyService

router = APIRouter()


@router.get("/tiers/global", response_model=GlobalTierConfigSchema)
def get_global_tiers(db: Session = Depends(get_db)):
    return GlobalTierConfigSchema.from_domain(PolicyService(db).get_global_tiers())


@router.put("/tiers/global", response_model=GlobalTierConfigSchema)
def update_global_tiers(
    request_body: GlobalTierConfigSchema,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Replace the global tiers.

    Returns 422 when the tables overlap, leave gaps, cross the repayment
    period, or do not fit a vendor that follows them.
    """
    request_id = get_request_id(request)

    try:
        saved = PolicyService(db).update_global_tiers(request_body.to_domain())
        return GlobalTierConfigSchema.from_domain(saved)

    except DomainException as e:
        raise to_http_exception(e, request_id)

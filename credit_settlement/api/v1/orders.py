"""POST /v1/orders/{order_id}/delivery - delivery confirmation and vendor earnings"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from credit_settlement.api.dependencies import get_request_id
from credit_settlement.api.v1.errors import parse_id, to_http_exception
from credit_settlement.api.v1.schemas import DeliveryResponse, EarningLineSchema, EarningResponse
from credit_settlement.domain.exceptions import DomainException
from credit_settlement.infrastructure.database.models import VendorEarning
from credit_settlement.infrastructure.database.session import get_db
from credit_settlement.services.earnings import EarningsService

router = APIRouter()


def to_earning_response(entry: VendorEarning) -> EarningResponse:
    return EarningResponse(
        earning_id=str(entry.id),
        order_id=str(entry.order_id),
        vendor_id=str(entry.vendor_id),
        earnings_cents=entry.earnings_cents,
        price_difference_cents=entry.price_difference_cents,
        lines=[
            EarningLineSchema(
                product_id=line.product_id,
                quantity=line.quantity,
                price_difference_cents=line.price_difference_cents,
                earnings_cents=line.earnings_cents,
            )
            for line in entry.lines
        ],
    )


@router.post("/orders/{order_id}/delivery", response_model=DeliveryResponse)
def confirm_delivery(order_id: str, request: Request, db: Session = Depends(get_db)):
    """
    Mark an order delivered and record the vendor's earnings.

    Repeated calls return the entry written by the first one.
    """
    request_id = get_request_id(request)
    order_uuid = parse_id(order_id, "order")

    try:
        entries = EarningsService(db).record_delivery(order_uuid)
        return DeliveryResponse(order_id=order_id, earnings=[to_earning_response(e) for e in entries])

    except DomainException as e:
        raise to_http_exception(e, request_id)

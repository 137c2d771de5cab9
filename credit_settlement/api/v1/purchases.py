"""Credit purchases: approval against the credit limit, amount due and repayments"""

import logging
import time
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from credit_settlement.api.dependencies import get_notification_dispatcher, get_request_id
from credit_settlement.api.v1.errors import parse_id, to_http_exception
from credit_settlement.api.v1.schemas import (
    CreditPurchaseRequest,
    CreditPurchaseResponse,
    ProjectionPointSchema,
    ProjectionResponse,
    RepaymentBreakdownSchema,
    RepaymentQuoteResponse,
    RepaymentRequest,
    RepaymentResponse,
)
from credit_settlement.domain.exceptions import CreditLimitExceeded, DomainException
from credit_settlement.infrastructure.clients.notifications import NotificationDispatcher
from credit_settlement.infrastructure.database.models import CreditPurchase
from credit_settlement.infrastructure.database.session import get_db
from credit_settlement.infrastructure.observability.logging import log_credit_decision, log_repayment
from credit_settlement.services.credit_guard import CreditLimitGuard
from credit_settlement.services.repayments import RepaymentService
from credit_settlement.utils.date_utils import today

router = APIRouter()


def to_purchase_response(purchase: CreditPurchase) -> CreditPurchaseResponse:
    return CreditPurchaseResponse(
        purchase_id=str(purchase.id),
        vendor_id=str(purchase.vendor_id),
        principal_cents=purchase.principal_cents,
        purchase_date=purchase.purchase_date,
        due_date=purchase.due_date,
        status=purchase.status,
        repaid_cents=purchase.repaid_cents,
        lifecycle_state=purchase.lifecycle_state,
    )


@router.post("/credit-purchases", response_model=CreditPurchaseResponse, status_code=201)
def create_credit_purchase(
    request_body: CreditPurchaseRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """
    Buy on credit.

    Flow:
    1. Check order value bounds and vendor approval
    2. Reserve credit with a conditional update (409 if the limit would be exceeded)
    3. Persist the purchase with its due date
    4. Warn the vendor on high utilization (async dispatch)
    """
    start_time = time.time()
    request_id = get_request_id(request)
    vendor_id = str(request_body.vendor_id)

    try:
        guard = CreditLimitGuard(db)
        purchase = guard.evaluate_credit_purchase(request_body.vendor_id, request_body.amount_cents)

        if guard.outbox:
            background_tasks.add_task(dispatcher.send_all, list(guard.outbox))

        response = to_purchase_response(purchase)
        log_credit_decision(
            request_id,
            vendor_id,
            request_body.amount_cents,
            "approved",
            purchase_id=response.purchase_id,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return response

    except CreditLimitExceeded as e:
        log_credit_decision(
            request_id, vendor_id, request_body.amount_cents, "limit_exceeded", available_cents=e.available_cents
        )
        raise to_http_exception(e, request_id)

    except DomainException as e:
        log_credit_decision(request_id, vendor_id, request_body.amount_cents, e.code.lower())
        raise to_http_exception(e, request_id)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/credit-purchases/{purchase_id}/repayment", response_model=RepaymentQuoteResponse)
def get_repayment_amount(
    purchase_id: str,
    request: Request,
    as_of: Optional[date] = Query(None, description="Evaluation date, defaults to today"),
    db: Session = Depends(get_db),
):
    """Amount payable for the outstanding principal on `as_of`"""
    request_id = get_request_id(request)
    purchase_uuid = parse_id(purchase_id, "purchase")
    as_of = as_of or today()

    try:
        breakdown = RepaymentService(db).compute_repayment(purchase_uuid, as_of)
        return RepaymentQuoteResponse(
            purchase_id=purchase_id,
            as_of=as_of,
            breakdown=RepaymentBreakdownSchema(**asdict(breakdown)),
        )

    except DomainException as e:
        raise to_http_exception(e, request_id)


@router.get("/credit-purchases/{purchase_id}/projection", response_model=ProjectionResponse)
def get_repayment_projection(purchase_id: str, request: Request, db: Session = Depends(get_db)):
    """Payable amount at each point the applicable tier changes"""
    request_id = get_request_id(request)
    purchase_uuid = parse_id(purchase_id, "purchase")

    try:
        points = RepaymentService(db).project_repayment(purchase_uuid)
        return ProjectionResponse(
            purchase_id=purchase_id,
            points=[
                ProjectionPointSchema(
                    day_offset=p.day_offset,
                    on_date=p.on_date,
                    breakdown=RepaymentBreakdownSchema(**asdict(p.breakdown)),
                )
                for p in points
            ],
        )

    except DomainException as e:
        raise to_http_exception(e, request_id)


@router.post("/credit-purchases/{purchase_id}/repayments", response_model=RepaymentResponse, status_code=201)
def submit_repayment(
    purchase_id: str,
    request_body: RepaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Repay all or part of a purchase at today's rate; payment capture happens upstream"""
    request_id = get_request_id(request)
    purchase_uuid = parse_id(purchase_id, "purchase")

    try:
        service = RepaymentService(db)
        repayment = service.submit_repayment(
            purchase_uuid,
            principal_cents=request_body.principal_cents,
            payment_reference=request_body.payment_reference,
        )
        if service.outbox:
            background_tasks.add_task(dispatcher.send_all, list(service.outbox))

        purchase_status = repayment.purchase.status
        log_repayment(
            request_id,
            purchase_id,
            repayment.principal_cents,
            repayment.amount_paid_cents,
            repayment.tier_type,
            purchase_status == "repaid",
        )
        return RepaymentResponse(
            repayment_id=str(repayment.id),
            purchase_id=purchase_id,
            principal_cents=repayment.principal_cents,
            amount_paid_cents=repayment.amount_paid_cents,
            discount_cents=repayment.discount_cents,
            interest_cents=repayment.interest_cents,
            tier_name=repayment.tier_name,
            tier_type=repayment.tier_type,
            days_elapsed=repayment.days_elapsed,
            paid_on=repayment.paid_on,
            purchase_status=purchase_status,
        )

    except DomainException as e:
        raise to_http_exception(e, request_id)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

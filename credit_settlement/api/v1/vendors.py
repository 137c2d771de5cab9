"""Vendor onboarding and credit line administration"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from credit_settlement.api.dependencies import get_notification_dispatcher, get_request_id
from credit_settlement.api.v1.errors import parse_id, to_http_exception
from credit_settlement.api.v1.schemas import (
    CreditLimitRequest,
    CreditPolicyRequest,
    PerformanceTierRequest,
    TierSchema,
    VendorCreateRequest,
    VendorCreditResponse,
    VendorResponse,
)
from credit_settlement.domain.alerts import utilization_percent
from credit_settlement.domain.exceptions import DomainException, VendorExists, VendorNotFound
from credit_settlement.domain.models import FixedAgreement, OverriddenSchedule
from credit_settlement.domain.tiers import resolve_schedule
from credit_settlement.infrastructure.clients.notifications import NotificationDispatcher
from credit_settlement.infrastructure.database.models import Vendor
from credit_settlement.infrastructure.database.repositories import (
    TierConfigRepository,
    VendorRepository,
    policy_from_vendor,
)
from credit_settlement.infrastructure.database.session import atomic, get_db
from credit_settlement.infrastructure.observability.logging import log_vendor_registration
from credit_settlement.services.geofence_guard import GeofenceGuard
from credit_settlement.services.policies import PolicyService

router = APIRouter()


def to_vendor_response(vendor: Vendor) -> VendorResponse:
    return VendorResponse(
        vendor_id=str(vendor.id),
        name=vendor.name,
        phone=vendor.phone,
        status=vendor.status,
        latitude=vendor.latitude,
        longitude=vendor.longitude,
        performance_tier=vendor.performance_tier,
        credit_limit_cents=vendor.credit_limit_cents,
        outstanding_credit_cents=vendor.outstanding_credit_cents,
        available_credit_cents=vendor.credit_limit_cents - vendor.outstanding_credit_cents,
        repayment_days=vendor.repayment_days,
    )


@router.post("/vendors", response_model=VendorResponse, status_code=201)
def register_vendor(
    request_body: VendorCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Onboard a vendor as pending.

    Rejected with 409 when another pending or approved vendor is inside the
    exclusivity radius; the error names the nearest one and its distance.
    """
    request_id = get_request_id(request)

    try:
        vendor = GeofenceGuard(db).register_vendor(
            name=request_body.name,
            phone=request_body.phone,
            latitude=request_body.latitude,
            longitude=request_body.longitude,
            credit_limit_cents=request_body.credit_limit_cents,
            repayment_days=request_body.repayment_days,
        )
        log_vendor_registration(
            request_id, "registered", request_body.latitude, request_body.longitude, vendor_id=str(vendor.id)
        )
        return to_vendor_response(vendor)

    except VendorExists as e:
        log_vendor_registration(
            request_id,
            "vendor_exists",
            request_body.latitude,
            request_body.longitude,
            nearby_vendor_id=e.nearby_vendor_id,
            distance_km=e.distance_km,
        )
        raise to_http_exception(e, request_id)

    except DomainException as e:
        raise to_http_exception(e, request_id)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/vendors/{vendor_id}/approve", response_model=VendorResponse)
def approve_vendor(vendor_id: str, request: Request, db: Session = Depends(get_db)):
    request_id = get_request_id(request)
    vendor_uuid = parse_id(vendor_id, "vendor")

    try:
        vendor = GeofenceGuard(db).approve_vendor(vendor_uuid)
        log_vendor_registration(request_id, "approved", vendor.latitude, vendor.longitude, vendor_id=str(vendor.id))
        return to_vendor_response(vendor)

    except DomainException as e:
        raise to_http_exception(e, request_id)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/vendors/{vendor_id}/credit", response_model=VendorCreditResponse)
def get_vendor_credit(vendor_id: str, request: Request, db: Session = Depends(get_db)):
    """Credit line status and the schedule currently applied to the vendor"""
    request_id = get_request_id(request)
    vendor_uuid = parse_id(vendor_id, "vendor")

    try:
        with atomic(db):
            vendor = VendorRepository(db).get(vendor_uuid)
            if vendor is None:
                raise VendorNotFound(f"Vendor {vendor_id} not found")
            schedule = resolve_schedule(policy_from_vendor(vendor), TierConfigRepository(db).get())

            response = VendorCreditResponse(
                vendor_id=str(vendor.id),
                credit_limit_cents=vendor.credit_limit_cents,
                outstanding_credit_cents=vendor.outstanding_credit_cents,
                available_credit_cents=vendor.credit_limit_cents - vendor.outstanding_credit_cents,
                utilization_percent=round(
                    utilization_percent(vendor.outstanding_credit_cents, vendor.credit_limit_cents), 2
                ),
                repayment_days=schedule.repayment_days,
                schedule_type="standard",
            )
        if isinstance(schedule, FixedAgreement):
            response.schedule_type = "agreement"
            response.agreed_amount_cents = schedule.agreed_amount_cents
        else:
            if isinstance(schedule, OverriddenSchedule):
                response.schedule_type = "overridden"
            response.discount_tiers = [TierSchema.from_domain(t) for t in schedule.discount_tiers]
            response.interest_tiers = [TierSchema.from_domain(t) for t in schedule.interest_tiers]
        return response

    except DomainException as e:
        raise to_http_exception(e, request_id)


@router.put("/vendors/{vendor_id}/credit-policy", response_model=VendorResponse)
def update_credit_policy(
    vendor_id: str,
    request_body: CreditPolicyRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    request_id = get_request_id(request)
    vendor_uuid = parse_id(vendor_id, "vendor")

    try:
        vendor = PolicyService(db).update_vendor_policy(vendor_uuid, request_body.to_domain())
        return to_vendor_response(vendor)

    except DomainException as e:
        raise to_http_exception(e, request_id)


@router.patch("/vendors/{vendor_id}/credit-limit", response_model=VendorResponse)
def adjust_credit_limit(
    vendor_id: str,
    request_body: CreditLimitRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    request_id = get_request_id(request)
    vendor_uuid = parse_id(vendor_id, "vendor")

    try:
        service = PolicyService(db)
        vendor = service.adjust_credit_limit(vendor_uuid, request_body.new_limit_cents, request_body.reason)
        if service.outbox:
            background_tasks.add_task(dispatcher.send_all, list(service.outbox))
        return to_vendor_response(vendor)

    except DomainException as e:
        raise to_http_exception(e, request_id)


@router.patch("/vendors/{vendor_id}/performance-tier", response_model=VendorResponse)
def update_performance_tier(
    vendor_id: str,
    request_body: PerformanceTierRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    request_id = get_request_id(request)
    vendor_uuid = parse_id(vendor_id, "vendor")

    try:
        vendor = PolicyService(db).update_performance_tier(vendor_uuid, request_body.tier)
        return to_vendor_response(vendor)

    except DomainException as e:
        raise to_http_exception(e, request_id)

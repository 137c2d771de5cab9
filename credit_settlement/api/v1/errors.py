"""Translation of domain exceptions to HTTP errors"""

import logging
import uuid

from fastapi import HTTPException

from credit_settlement.domain.exceptions import (
    AboveMaximumPurchase,
    BelowMinimumPurchase,
    ConfigurationError,
    CreditLimitExceeded,
    DomainException,
    InvalidCreditAdjustment,
    NotificationNotFound,
    OrderNotFound,
    PurchaseNotFound,
    RepaymentNotAllowed,
    StaleWrite,
    VendorExists,
    VendorNotApproved,
    VendorNotFound,
)

STATUS_BY_EXCEPTION = {
    ConfigurationError: 422,
    BelowMinimumPurchase: 422,
    AboveMaximumPurchase: 422,
    CreditLimitExceeded: 409,
    VendorExists: 409,
    VendorNotApproved: 409,
    StaleWrite: 503,
    VendorNotFound: 404,
    PurchaseNotFound: 404,
    OrderNotFound: 404,
    NotificationNotFound: 404,
    RepaymentNotAllowed: 400,
    InvalidCreditAdjustment: 400,
}


def parse_id(raw: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID format")


def to_http_exception(error: DomainException, request_id: str) -> HTTPException:
    """HTTPException carrying the error code, message and any structured fields"""
    status_code = STATUS_BY_EXCEPTION.get(type(error), 400)
    detail = {"code": error.code, "message": str(error)}

    if isinstance(error, CreditLimitExceeded):
        detail["available_cents"] = error.available_cents
        detail["requested_cents"] = error.requested_cents
    elif isinstance(error, VendorExists):
        detail["nearby_vendor_id"] = error.nearby_vendor_id
        detail["distance_km"] = round(error.distance_km, 3)
        detail["radius_km"] = error.radius_km
    elif isinstance(error, RepaymentNotAllowed) and error.earliest_date:
        detail["earliest_date"] = error.earliest_date

    log = logging.error if status_code >= 500 else logging.warning
    log(f"{error.code}: {error}", extra={"request_id": request_id, "status_code": status_code})
    return HTTPException(status_code=status_code, detail=detail)

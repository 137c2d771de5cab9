"""Domain-specific exceptions"""

from typing import Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    code: str = "DOMAIN_ERROR"


class ConfigurationError(DomainException):
    """Tier schedule or credit policy is malformed"""

    code = "CONFIGURATION_ERROR"


class CreditLimitExceeded(DomainException):
    """Purchase would push outstanding credit past the vendor's limit"""

    code = "CREDIT_LIMIT_EXCEEDED"

    def __init__(self, vendor_id: str, requested_cents: int, available_cents: int):
        self.vendor_id = vendor_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            f"Requested {requested_cents} exceeds available credit {available_cents} for vendor {vendor_id}"
        )


class BelowMinimumPurchase(DomainException):
    """Purchase amount is below the minimum order value"""

    code = "BELOW_MINIMUM_PURCHASE"


class AboveMaximumPurchase(DomainException):
    """Purchase amount is above the maximum order value"""

    code = "ABOVE_MAXIMUM_PURCHASE"


class VendorExists(DomainException):
    """Another vendor already serves the exclusivity radius"""

    code = "VENDOR_EXISTS"

    def __init__(self, nearby_vendor_id: str, distance_km: float, radius_km: float):
        self.nearby_vendor_id = nearby_vendor_id
        self.distance_km = distance_km
        self.radius_km = radius_km
        super().__init__(
            f"Another vendor exists within {radius_km:g}km radius "
            f"(vendor {nearby_vendor_id}, {distance_km:.2f}km away). "
            "Only one vendor may serve an area."
        )


class DuplicateEarning(DomainException):
    """Earning entry for the (order, vendor) pair already exists"""

    code = "DUPLICATE_EARNING"


class StaleWrite(DomainException):
    """Transaction lost a conflict and must be retried with fresh state"""

    code = "STALE_WRITE"


class VendorNotFound(DomainException):
    code = "VENDOR_NOT_FOUND"


class VendorNotApproved(DomainException):
    code = "VENDOR_NOT_APPROVED"


class PurchaseNotFound(DomainException):
    code = "PURCHASE_NOT_FOUND"


class OrderNotFound(DomainException):
    code = "ORDER_NOT_FOUND"


class NotificationNotFound(DomainException):
    code = "NOTIFICATION_NOT_FOUND"


class RepaymentNotAllowed(DomainException):
    """Repayment rejected by a business rule (day 0, already repaid, over-repayment)"""

    code = "REPAYMENT_NOT_ALLOWED"

    def __init__(self, message: str, earliest_date: Optional[str] = None):
        self.earliest_date = earliest_date
        super().__init__(message)


class InvalidCreditAdjustment(DomainException):
    """Admin credit-line change rejected (missing reason, limit below outstanding, unknown tier)"""

    code = "INVALID_CREDIT_ADJUSTMENT"

"""Pydantic schemas for API request/response validation"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, UUID4

from credit_settlement.domain.models import CreditPolicy, GlobalTierConfig, SpecialAgreement, Tier


class TierSchema(BaseModel):
    """Day range [period_start, period_end) and its rate in percent"""

    period_start: int = Field(..., ge=0)
    period_end: Optional[int] = Field(None, description="Omit for an open-ended last tier")
    rate: float = Field(..., ge=0)
    tier_name: str = ""

    def to_domain(self) -> Tier:
        return Tier(
            period_start=self.period_start,
            period_end=self.period_end,
            rate=self.rate,
            tier_name=self.tier_name,
        )

    @classmethod
    def from_domain(cls, tier: Tier) -> "TierSchema":
        return cls(
            period_start=tier.period_start,
            period_end=tier.period_end,
            rate=tier.rate,
            tier_name=tier.tier_name,
        )


class GlobalTierConfigSchema(BaseModel):
    """Body and response of /v1/tiers/global"""

    repayment_days: int = Field(..., gt=0)
    discount_tiers: List[TierSchema] = []
    interest_tiers: List[TierSchema] = []

    def to_domain(self) -> GlobalTierConfig:
        return GlobalTierConfig(
            repayment_days=self.repayment_days,
            discount_tiers=[t.to_domain() for t in self.discount_tiers],
            interest_tiers=[t.to_domain() for t in self.interest_tiers],
        )

    @classmethod
    def from_domain(cls, config: GlobalTierConfig) -> "GlobalTierConfigSchema":
        return cls(
            repayment_days=config.repayment_days,
            discount_tiers=[TierSchema.from_domain(t) for t in config.discount_tiers],
            interest_tiers=[TierSchema.from_domain(t) for t in config.interest_tiers],
        )


class SpecialAgreementSchema(BaseModel):
    active: bool = False
    agreed_amount_cents: Optional[int] = None
    notes: str = ""


class CreditPolicyRequest(BaseModel):
    """Request body for PUT /v1/vendors/{vendor_id}/credit-policy"""

    repayment_days: int = Field(..., gt=0)
    override_global_tiers: bool = False
    custom_discount_tiers: List[TierSchema] = []
    custom_interest_tiers: List[TierSchema] = []
    special_agreement: SpecialAgreementSchema = SpecialAgreementSchema()

    def to_domain(self) -> CreditPolicy:
        return CreditPolicy(
            repayment_days=self.repayment_days,
            override_global_tiers=self.override_global_tiers,
            custom_discount_tiers=[t.to_domain() for t in self.custom_discount_tiers],
            custom_interest_tiers=[t.to_domain() for t in self.custom_interest_tiers],
            special_agreement=SpecialAgreement(
                active=self.special_agreement.active,
                agreed_amount_cents=self.special_agreement.agreed_amount_cents,
                notes=self.special_agreement.notes,
            ),
        )


class VendorCreateRequest(BaseModel):
    """Request body for POST /v1/vendors"""

    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    credit_limit_cents: int = Field(0, ge=0)
    repayment_days: Optional[int] = Field(None, gt=0)


class VendorResponse(BaseModel):
    vendor_id: str
    name: str
    phone: Optional[str] = None
    status: str
    latitude: float
    longitude: float
    performance_tier: str
    credit_limit_cents: int
    outstanding_credit_cents: int
    available_credit_cents: int
    repayment_days: int


class CreditLimitRequest(BaseModel):
    """Request body for PATCH /v1/vendors/{vendor_id}/credit-limit"""

    new_limit_cents: int = Field(..., ge=0)
    reason: str


class PerformanceTierRequest(BaseModel):
    tier: str
    reason: Optional[str] = None


class VendorCreditResponse(BaseModel):
    """Response for GET /v1/vendors/{vendor_id}/credit"""

    vendor_id: str
    credit_limit_cents: int
    outstanding_credit_cents: int
    available_credit_cents: int
    utilization_percent: float
    repayment_days: int
    schedule_type: str  # standard | overridden | agreement
    discount_tiers: List[TierSchema] = []
    interest_tiers: List[TierSchema] = []
    agreed_amount_cents: Optional[int] = None


class CreditPurchaseRequest(BaseModel):
    """Request body for POST /v1/credit-purchases"""

    vendor_id: UUID4
    amount_cents: int = Field(..., gt=0, description="Purchase amount in minor units")


class CreditPurchaseResponse(BaseModel):
    purchase_id: str
    vendor_id: str
    principal_cents: int
    purchase_date: date
    due_date: date
    status: str
    repaid_cents: int
    lifecycle_state: str


class RepaymentBreakdownSchema(BaseModel):
    principal_cents: int
    payable_cents: int
    discount_cents: int
    interest_cents: int
    discount_rate: float
    interest_rate: float
    tier_name: Optional[str] = None
    tier_type: str
    days_elapsed: int


class RepaymentQuoteResponse(BaseModel):
    """Response for GET /v1/credit-purchases/{purchase_id}/repayment"""

    purchase_id: str
    as_of: date
    breakdown: RepaymentBreakdownSchema


class ProjectionPointSchema(BaseModel):
    day_offset: int
    on_date: date
    breakdown: RepaymentBreakdownSchema


class ProjectionResponse(BaseModel):
    purchase_id: str
    points: List[ProjectionPointSchema]


class RepaymentRequest(BaseModel):
    """Request body for POST /v1/credit-purchases/{purchase_id}/repayments"""

    principal_cents: Optional[int] = Field(None, gt=0, description="Defaults to the full outstanding principal")
    payment_reference: Optional[str] = None


class RepaymentResponse(BaseModel):
    repayment_id: str
    purchase_id: str
    principal_cents: int
    amount_paid_cents: int
    discount_cents: int
    interest_cents: int
    tier_name: Optional[str] = None
    tier_type: str
    days_elapsed: int
    paid_on: date
    purchase_status: str


class EarningLineSchema(BaseModel):
    product_id: str
    quantity: int
    price_difference_cents: int
    earnings_cents: int


class EarningResponse(BaseModel):
    earning_id: str
    order_id: str
    vendor_id: str
    earnings_cents: int
    price_difference_cents: int
    lines: List[EarningLineSchema]


class DeliveryResponse(BaseModel):
    """Response for POST /v1/orders/{order_id}/delivery"""

    order_id: str
    earnings: List[EarningResponse]


class NotificationResponse(BaseModel):
    notification_id: Optional[str] = None
    vendor_id: str
    purchase_id: Optional[str] = None
    type: str
    title: str
    message: str
    priority: str
    metadata: Dict[str, Any] = {}
    is_read: bool = False
    is_dismissed: bool = False


class NotificationListResponse(BaseModel):
    vendor_id: str
    notifications: List[NotificationResponse]


class LifecycleTickResponse(BaseModel):
    """Response for POST /v1/lifecycle/tick"""

    as_of: date
    notifications: List[NotificationResponse]

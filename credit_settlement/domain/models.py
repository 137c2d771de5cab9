"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Tier:
    """Day-offset range [period_start, period_end) mapped to a percentage rate"""

    period_start: int
    period_end: Optional[int]  # None = open-ended, last tier only
    rate: float
    tier_name: str

    def contains(self, day: int) -> bool:
        if day < self.period_start:
            return False
        return self.period_end is None or day < self.period_end


@dataclass
class SpecialAgreement:
    """Fixed total repayment that bypasses tiered calculation"""

    active: bool = False
    agreed_amount_cents: Optional[int] = None
    notes: str = ""


@dataclass
class CreditPolicy:
    """Vendor credit policy as edited by an admin"""

    repayment_days: int
    override_global_tiers: bool = False
    custom_discount_tiers: List[Tier] = field(default_factory=list)
    custom_interest_tiers: List[Tier] = field(default_factory=list)
    special_agreement: SpecialAgreement = field(default_factory=SpecialAgreement)


@dataclass
class GlobalTierConfig:
    """System-wide default tier tables"""

    repayment_days: int
    discount_tiers: List[Tier]
    interest_tiers: List[Tier]


@dataclass(frozen=True)
class TieredSchedule:
    """Validated, sorted discount and interest tables"""

    discount_tiers: Tuple[Tier, ...]
    interest_tiers: Tuple[Tier, ...]
    repayment_days: int


@dataclass(frozen=True)
class StandardSchedule(TieredSchedule):
    """Vendor follows the global tier configuration"""


@dataclass(frozen=True)
class OverriddenSchedule(TieredSchedule):
    """Vendor has its own custom tiers"""


@dataclass(frozen=True)
class FixedAgreement:
    """Special agreement: a fixed total is payable regardless of elapsed time"""

    agreed_amount_cents: int
    repayment_days: int
    notes: str = ""


EffectiveSchedule = Union[StandardSchedule, OverriddenSchedule, FixedAgreement]


@dataclass
class RepaymentBreakdown:
    """Output of the repayment calculator"""

    principal_cents: int
    payable_cents: int
    discount_cents: int
    interest_cents: int
    discount_rate: float
    interest_rate: float
    tier_name: Optional[str]
    tier_type: str  # "discount" | "interest" | "neutral" | "agreement"
    days_elapsed: int


@dataclass
class ProjectionPoint:
    """Payable amount if repaid on a given day offset"""

    day_offset: int
    on_date: date
    breakdown: RepaymentBreakdown


@dataclass
class EarningItem:
    """Order line as seen by the earnings calculator"""

    product_id: str
    quantity: int
    price_to_user_cents: int
    price_to_vendor_cents: int


@dataclass
class EarningLine:
    product_id: str
    quantity: int
    price_difference_cents: int  # per unit
    earnings_cents: int


@dataclass
class OrderEarnings:
    lines: List[EarningLine]
    total_cents: int
    price_difference_cents: int


@dataclass
class NotificationEvent:
    """Payload handed to the external notification dispatcher"""

    vendor_id: str
    type: str
    title: str
    message: str
    priority: str
    metadata: Dict[str, Any]
    purchase_id: Optional[str] = None
    notification_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "vendorId": self.vendor_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "metadata": self.metadata,
            "priority": self.priority,
        }

"""Credit line notifications: high utilization warnings and limit increases"""

from datetime import date

from credit_settlement.domain.lifecycle import (
    NOTIFY_CREDIT_LIMIT_INCREASE,
    NOTIFY_HIGH_UTILIZATION,
    PRIORITY_HIGH,
    PRIORITY_NORMAL,
    format_amount,
)
from credit_settlement.domain.models import NotificationEvent

_EPOCH = date(1970, 1, 1)


def utilization_percent(outstanding_cents: int, limit_cents: int) -> float:
    if limit_cents <= 0:
        return 100.0 if outstanding_cents > 0 else 0.0
    return outstanding_cents * 100.0 / limit_cents


def high_utilization_key(vendor_id: str, on_date: date, window_days: int) -> str:
    """Same key for every day of a fixed window, so one warning per vendor per window"""
    window = (on_date - _EPOCH).days // window_days
    return f"{vendor_id}:{NOTIFY_HIGH_UTILIZATION}:{window}"


def build_high_utilization_event(
    vendor_id: str,
    outstanding_cents: int,
    limit_cents: int,
) -> NotificationEvent:
    utilization = utilization_percent(outstanding_cents, limit_cents)
    return NotificationEvent(
        vendor_id=vendor_id,
        type=NOTIFY_HIGH_UTILIZATION,
        title="High Credit Utilization",
        message=(
            f"You have used {utilization:.0f}% of your credit limit. "
            f"Available credit: {format_amount(max(0, limit_cents - outstanding_cents))}. "
            "Repay early to free up credit and earn discounts."
        ),
        priority=PRIORITY_HIGH,
        metadata={
            "utilization": round(utilization, 2),
            "creditLimit": limit_cents,
            "creditUsed": outstanding_cents,
            "availableCredit": max(0, limit_cents - outstanding_cents),
        },
    )


def build_credit_limit_increase_event(
    vendor_id: str,
    old_limit_cents: int,
    new_limit_cents: int,
    reason: str,
) -> NotificationEvent:
    return NotificationEvent(
        vendor_id=vendor_id,
        type=NOTIFY_CREDIT_LIMIT_INCREASE,
        title="Credit Limit Increased",
        message=(
            f"Your credit limit has been increased from {format_amount(old_limit_cents)} "
            f"to {format_amount(new_limit_cents)}."
        ),
        priority=PRIORITY_NORMAL,
        metadata={
            "oldLimit": old_limit_cents,
            "newLimit": new_limit_cents,
            "increase": new_limit_cents - old_limit_cents,
            "reason": reason,
        },
    )

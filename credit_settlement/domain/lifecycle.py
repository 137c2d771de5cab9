"""Repayment lifecycle states and the notifications emitted on transitions"""

from datetime import date
from typing import Optional

from credit_settlement.domain.models import NotificationEvent, RepaymentBreakdown
from credit_settlement.utils.date_utils import add_days, days_between

STATE_PENDING = "pending"
STATE_DUE_SOON = "due_soon"
STATE_OVERDUE = "overdue"
STATE_REPAID = "repaid"

_RANK = {
    STATE_PENDING: 0,
    STATE_DUE_SOON: 1,
    STATE_OVERDUE: 2,
    STATE_REPAID: 3,
}

NOTIFY_DUE_REMINDER = "due_reminder"
NOTIFY_OVERDUE_ALERT = "overdue_alert"
NOTIFY_REPAYMENT_SUCCESS = "repayment_success"
NOTIFY_CREDIT_LIMIT_INCREASE = "credit_limit_increase"
NOTIFY_HIGH_UTILIZATION = "high_utilization"

PRIORITY_NORMAL = "normal"
PRIORITY_HIGH = "high"
PRIORITY_URGENT = "urgent"


def determine_state(
    outstanding_principal_cents: int,
    due_date: date,
    as_of: date,
    due_soon_days: int,
) -> str:
    """Lifecycle state of a purchase on `as_of`"""
    if outstanding_principal_cents <= 0:
        return STATE_REPAID
    if as_of > due_date:
        return STATE_OVERDUE
    if as_of >= add_days(due_date, -due_soon_days):
        return STATE_DUE_SOON
    return STATE_PENDING


def next_transition(current_state: Optional[str], new_state: str) -> Optional[str]:
    """New state if moving forward into a notifying state, else None. States never regress."""
    current_rank = _RANK.get(current_state or STATE_PENDING, 0)
    if new_state == STATE_PENDING or _RANK[new_state] <= current_rank:
        return None
    return new_state


def event_key(purchase_id: str, state: str) -> str:
    """Idempotency key: one notification per purchase per transition"""
    return f"{purchase_id}:{state}"


def format_amount(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def build_transition_event(
    state: str,
    vendor_id: str,
    purchase_id: str,
    breakdown: RepaymentBreakdown,
    due_date: date,
    as_of: date,
) -> NotificationEvent:
    """Notification for a transition into due_soon, overdue or repaid"""
    metadata = {
        "purchaseId": purchase_id,
        "purchaseAmount": breakdown.principal_cents,
        "currentPayable": breakdown.payable_cents,
        "savings": breakdown.discount_cents,
        "penalty": breakdown.interest_cents,
        "daysElapsed": breakdown.days_elapsed,
        "tierApplied": breakdown.tier_name,
        "dueDate": due_date.isoformat(),
    }
    payable = format_amount(breakdown.payable_cents)

    if state == STATE_DUE_SOON:
        days_left = days_between(as_of, due_date)
        return NotificationEvent(
            vendor_id=vendor_id,
            purchase_id=purchase_id,
            type=NOTIFY_DUE_REMINDER,
            title="Credit Repayment Due Soon",
            message=(
                f"Your credit payment of {payable} is due on {due_date.isoformat()} "
                f"({days_left} day(s) left). Repay before the due date to avoid interest charges."
            ),
            priority=PRIORITY_HIGH,
            metadata=metadata,
        )

    if state == STATE_OVERDUE:
        days_overdue = days_between(due_date, as_of)
        return NotificationEvent(
            vendor_id=vendor_id,
            purchase_id=purchase_id,
            type=NOTIFY_OVERDUE_ALERT,
            title="Overdue Payment",
            message=(
                f"Your credit payment is {days_overdue} day(s) overdue. "
                f"Amount payable: {payable} (interest: {format_amount(breakdown.interest_cents)}). "
                "Pay soon to prevent further interest accumulation."
            ),
            priority=PRIORITY_URGENT,
            metadata=metadata,
        )

    if state == STATE_REPAID:
        return NotificationEvent(
            vendor_id=vendor_id,
            purchase_id=purchase_id,
            type=NOTIFY_REPAYMENT_SUCCESS,
            title="Repayment Successful",
            message=(
                f"Your repayment for purchase {purchase_id} is complete. "
                "Your credit limit has been restored."
            ),
            priority=PRIORITY_NORMAL,
            metadata=metadata,
        )

    raise ValueError(f"No notification for state {state!r}")

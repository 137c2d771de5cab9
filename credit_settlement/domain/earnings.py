"""Vendor earnings from the price difference on vendor-fulfilled orders"""

from typing import Iterable

from credit_settlement.domain.models import EarningItem, EarningLine, OrderEarnings

PAYMENT_FULLY_PAID = "fully_paid"
ASSIGNED_TO_VENDOR = "vendor"


def is_order_eligible(payment_status: str, vendor_id, assigned_to, is_escalated: bool) -> bool:
    """
    Earnings apply only to orders that are:
    - fully paid
    - assigned to a vendor
    - fulfilled by that vendor (older orders have no assignment and count as vendor)
    - not escalated to admin
    """
    if payment_status != PAYMENT_FULLY_PAID or vendor_id is None:
        return False
    if assigned_to not in (None, ASSIGNED_TO_VENDOR):
        return False
    return not is_escalated


def calculate_order_earnings(items: Iterable[EarningItem]) -> OrderEarnings:
    """
    Per line: max(0, (price_to_user - price_to_vendor) x quantity).

    Lines with no positive difference are dropped; the total is the sum of the
    kept lines and is therefore never negative.
    """
    lines = []
    for item in items:
        unit_difference = item.price_to_user_cents - item.price_to_vendor_cents
        earnings = max(0, unit_difference * item.quantity)
        if earnings <= 0:
            continue
        lines.append(
            EarningLine(
                product_id=item.product_id,
                quantity=item.quantity,
                price_difference_cents=unit_difference,
                earnings_cents=earnings,
            )
        )

    total = sum(line.earnings_cents for line in lines)
    return OrderEarnings(
        lines=lines,
        total_cents=total,
        price_difference_cents=sum(line.price_difference_cents for line in lines),
    )

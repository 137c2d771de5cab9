"""Repayment calculator - payable amount for a credit purchase on a given day"""

from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Union

from credit_settlement.domain.models import (
    EffectiveSchedule,
    FixedAgreement,
    ProjectionPoint,
    RepaymentBreakdown,
    Tier,
)
from credit_settlement.utils.date_utils import days_between

TIER_DISCOUNT = "discount"
TIER_INTEREST = "interest"
TIER_NEUTRAL = "neutral"
TIER_AGREEMENT = "agreement"


def percent_of(amount_cents: int, rate: float) -> int:
    """rate% of amount, rounded half-up to a whole minor unit"""
    value = Decimal(amount_cents) * Decimal(str(rate)) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def find_tier(tiers: Sequence[Tier], day: int) -> Optional[Tier]:
    for tier in tiers:
        if tier.contains(day):
            return tier
    return None


def calculate_repayment(
    principal_cents: int,
    purchase_date: Union[date, datetime],
    schedule: EffectiveSchedule,
    as_of: Union[date, datetime],
) -> RepaymentBreakdown:
    """
    Compute what is payable on `as_of` for a purchase made on `purchase_date`.

    Requirements:
    - Special agreement: payable is the agreed amount, verbatim
    - days_elapsed counts whole calendar days since the purchase date
    - Day inside a discount tier: principal x (1 - rate/100)
    - Day inside an interest tier: principal x (1 + rate/100)
    - No tier matches (neutral zone): principal unchanged

    Pure function: identical inputs always give the identical breakdown.

    Example:
        principal 10000, discount [0,10) 5%, interest [30,60) 2%
        day 5  -> 9500
        day 15 -> 10000 (neutral)
        day 40 -> 10200
    """
    days_elapsed = days_between(purchase_date, as_of)

    if isinstance(schedule, FixedAgreement):
        return RepaymentBreakdown(
            principal_cents=principal_cents,
            payable_cents=schedule.agreed_amount_cents,
            discount_cents=0,
            interest_cents=0,
            discount_rate=0.0,
            interest_rate=0.0,
            tier_name="Special Agreement",
            tier_type=TIER_AGREEMENT,
            days_elapsed=days_elapsed,
        )

    discount_tier = find_tier(schedule.discount_tiers, days_elapsed)
    if discount_tier is not None:
        discount = percent_of(principal_cents, discount_tier.rate)
        return RepaymentBreakdown(
            principal_cents=principal_cents,
            payable_cents=principal_cents - discount,
            discount_cents=discount,
            interest_cents=0,
            discount_rate=discount_tier.rate,
            interest_rate=0.0,
            tier_name=discount_tier.tier_name,
            tier_type=TIER_DISCOUNT,
            days_elapsed=days_elapsed,
        )

    interest_tier = find_tier(schedule.interest_tiers, days_elapsed)
    if interest_tier is not None:
        interest = percent_of(principal_cents, interest_tier.rate)
        return RepaymentBreakdown(
            principal_cents=principal_cents,
            payable_cents=principal_cents + interest,
            discount_cents=0,
            interest_cents=interest,
            discount_rate=0.0,
            interest_rate=interest_tier.rate,
            tier_name=interest_tier.tier_name,
            tier_type=TIER_INTEREST,
            days_elapsed=days_elapsed,
        )

    return RepaymentBreakdown(
        principal_cents=principal_cents,
        payable_cents=principal_cents,
        discount_cents=0,
        interest_cents=0,
        discount_rate=0.0,
        interest_rate=0.0,
        tier_name=None,
        tier_type=TIER_NEUTRAL,
        days_elapsed=days_elapsed,
    )


def prorate(breakdown: RepaymentBreakdown, portion_cents: int) -> RepaymentBreakdown:
    """
    Breakdown for repaying only `portion_cents` of the principal at the same rate.

    Agreements pay the same share of the agreed amount as the share of
    principal being settled.
    """
    if portion_cents == breakdown.principal_cents:
        return replace(breakdown)

    if breakdown.tier_type == TIER_AGREEMENT:
        share = Decimal(breakdown.payable_cents) * Decimal(portion_cents) / Decimal(breakdown.principal_cents)
        payable = int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return replace(breakdown, principal_cents=portion_cents, payable_cents=payable)

    discount = percent_of(portion_cents, breakdown.discount_rate) if breakdown.discount_rate else 0
    interest = percent_of(portion_cents, breakdown.interest_rate) if breakdown.interest_rate else 0
    return replace(
        breakdown,
        principal_cents=portion_cents,
        payable_cents=portion_cents - discount + interest,
        discount_cents=discount,
        interest_cents=interest,
    )


def project_repayment_schedule(
    principal_cents: int,
    purchase_date: date,
    schedule: EffectiveSchedule,
) -> List[ProjectionPoint]:
    """
    Payable amount at every point where the applicable rate changes.

    One point per tier start, plus the start of the neutral zone and day 0.
    Agreements have a single point since the amount never moves.
    """
    if isinstance(schedule, FixedAgreement):
        offsets = [0]
    else:
        boundaries = {0}
        for tier in schedule.discount_tiers:
            boundaries.add(tier.period_start)
            if tier.period_end is not None:
                boundaries.add(tier.period_end)
        for tier in schedule.interest_tiers:
            boundaries.add(tier.period_start)
            if tier.period_end is not None:
                boundaries.add(tier.period_end)
        offsets = sorted(boundaries)

    points = []
    for offset in offsets:
        on_date = purchase_date + timedelta(days=offset)
        points.append(
            ProjectionPoint(
                day_offset=offset,
                on_date=on_date,
                breakdown=calculate_repayment(principal_cents, purchase_date, schedule, on_date),
            )
        )
    return points


def outstanding_breakdown(
    principal_cents: int,
    repaid_cents: int,
    purchase_date: date,
    schedule: EffectiveSchedule,
    as_of: Union[date, datetime],
) -> RepaymentBreakdown:
    """Payable on `as_of` for the principal not yet repaid"""
    full = calculate_repayment(principal_cents, purchase_date, schedule, as_of)
    return prorate(full, max(0, principal_cents - repaid_cents))

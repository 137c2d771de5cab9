"""Tier schedule validation and resolution.

Precedence when resolving a vendor's effective schedule:
1. Active special agreement -> FixedAgreement (tiers are ignored)
2. override_global_tiers -> OverriddenSchedule with the vendor's custom tiers
3. Otherwise -> StandardSchedule from the global configuration

Validation happens when a policy is written. The repayment calculator assumes
the schedule it receives is well formed.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from credit_settlement.domain.exceptions import ConfigurationError
from credit_settlement.domain.models import (
    CreditPolicy,
    EffectiveSchedule,
    FixedAgreement,
    GlobalTierConfig,
    OverriddenSchedule,
    SpecialAgreement,
    StandardSchedule,
    Tier,
)

DISCOUNT = "discount"
INTEREST = "interest"


def tier_from_dict(data: Dict[str, Any]) -> Tier:
    """Build a Tier from its stored JSON form"""
    try:
        period_end = data.get("period_end")
        return Tier(
            period_start=int(data["period_start"]),
            period_end=int(period_end) if period_end is not None else None,
            rate=float(data["rate"]),
            tier_name=str(data.get("tier_name") or ""),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Malformed tier {data!r}: {e}") from e


def tier_to_dict(tier: Tier) -> Dict[str, Any]:
    return {
        "period_start": tier.period_start,
        "period_end": tier.period_end,
        "rate": tier.rate,
        "tier_name": tier.tier_name,
    }


def by_start(tiers: Iterable[Tier]) -> Tuple[Tier, ...]:
    return tuple(sorted(tiers, key=lambda t: t.period_start))


def tiers_from_json(raw: Optional[Iterable[Dict[str, Any]]]) -> List[Tier]:
    return [tier_from_dict(item) for item in (raw or [])]


def validate_tiers(tiers: Sequence[Tier], kind: str) -> Tuple[Tier, ...]:
    """
    Validate one tier table and return it sorted by period_start.

    Rules:
    - period_start >= 0 and period_end > period_start
    - rate >= 0 (discounts strictly below 100%)
    - only the last tier may be open-ended
    - consecutive tiers neither overlap nor leave a gap
    """
    ordered = by_start(tiers)

    for i, tier in enumerate(ordered):
        label = tier.tier_name or f"{kind} tier #{i + 1}"

        if tier.period_start < 0:
            raise ConfigurationError(f"{label}: period_start must be >= 0")
        if tier.period_end is not None and tier.period_end <= tier.period_start:
            raise ConfigurationError(f"{label}: period_end must be greater than period_start")
        if tier.rate < 0:
            raise ConfigurationError(f"{label}: rate cannot be negative")
        if kind == DISCOUNT and tier.rate >= 100:
            raise ConfigurationError(f"{label}: discount rate must be below 100%")

        if i == 0:
            continue

        previous = ordered[i - 1]
        if previous.period_end is None:
            raise ConfigurationError(
                f"{previous.tier_name or kind + ' tier'}: only the last {kind} tier may be open-ended"
            )
        if tier.period_start < previous.period_end:
            raise ConfigurationError(
                f"{kind} tiers overlap: [{previous.period_start}, {previous.period_end}) "
                f"and [{tier.period_start}, {tier.period_end})"
            )
        if tier.period_start > previous.period_end:
            raise ConfigurationError(
                f"{kind} tiers leave a gap between day {previous.period_end} and day {tier.period_start}"
            )

    return ordered


def validate_schedule(
    discount_tiers: Sequence[Tier],
    interest_tiers: Sequence[Tier],
    repayment_days: int,
) -> Tuple[Tuple[Tier, ...], Tuple[Tier, ...]]:
    """
    Validate both tables together.

    Discount tiers must end on or before repayment_days and interest tiers must
    start on or after it, so a day offset matches at most one tier overall.
    The span between the two tables is the neutral zone and is allowed.
    """
    if repayment_days is None or repayment_days <= 0:
        raise ConfigurationError("repayment_days must be greater than 0")

    discounts = validate_tiers(discount_tiers, DISCOUNT)
    interests = validate_tiers(interest_tiers, INTEREST)

    if discounts:
        last = discounts[-1]
        if last.period_end is None or last.period_end > repayment_days:
            raise ConfigurationError(
                f"Discount tiers must end by day {repayment_days} (repayment period)"
            )
    if interests and interests[0].period_start < repayment_days:
        raise ConfigurationError(
            f"Interest tiers cannot start before day {repayment_days} (repayment period)"
        )

    return discounts, interests


def validate_special_agreement(agreement: SpecialAgreement) -> None:
    if not agreement.active:
        return
    if agreement.agreed_amount_cents is None or agreement.agreed_amount_cents < 0:
        raise ConfigurationError("Agreed amount must be a valid non-negative number")


def validate_policy(policy: CreditPolicy, global_config: GlobalTierConfig) -> None:
    """Validate the schedule a vendor would resolve to, before it is saved"""
    validate_special_agreement(policy.special_agreement)

    if policy.override_global_tiers:
        validate_schedule(policy.custom_discount_tiers, policy.custom_interest_tiers, policy.repayment_days)
    else:
        validate_schedule(global_config.discount_tiers, global_config.interest_tiers, policy.repayment_days)


def resolve_schedule(policy: CreditPolicy, global_config: GlobalTierConfig) -> EffectiveSchedule:
    """Pick the effective schedule for a vendor; global config is passed in explicitly"""
    agreement = policy.special_agreement
    if agreement.active:
        return FixedAgreement(
            agreed_amount_cents=int(agreement.agreed_amount_cents or 0),
            repayment_days=policy.repayment_days,
            notes=agreement.notes,
        )

    if policy.override_global_tiers:
        return OverriddenSchedule(
            discount_tiers=by_start(policy.custom_discount_tiers),
            interest_tiers=by_start(policy.custom_interest_tiers),
            repayment_days=policy.repayment_days,
        )

    return StandardSchedule(
        discount_tiers=by_start(global_config.discount_tiers),
        interest_tiers=by_start(global_config.interest_tiers),
        repayment_days=policy.repayment_days,
    )

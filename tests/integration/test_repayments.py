"""Integration tests for repayment quotes and settlement"""

import uuid
import pytest
from datetime import date
from sqlalchemy import select
from credit_settlement.domain.exceptions import PurchaseNotFound, RepaymentNotAllowed
from credit_settlement.infrastructure.database.models import CreditPurchase, CreditRepayment, Vendor
from credit_settlement.services.repayments import RepaymentService

PURCHASED = date(2025, 1, 1)


@pytest.mark.parametrize(
    "as_of, payable, tier_type",
    [
        (date(2025, 1, 6), 9_500, "discount"),  # day 5
        (date(2025, 1, 16), 10_000, "neutral"),  # day 15
        (date(2025, 2, 10), 10_200, "interest"),  # day 40
    ],
)
def test_compute_repayment_follows_global_tiers(db, make_vendor, make_purchase, as_of, payable, tier_type):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)

    breakdown = RepaymentService(db).compute_repayment(purchase.id, as_of)

    assert breakdown.payable_cents == payable
    assert breakdown.tier_type == tier_type


def test_compute_repayment_is_repeatable(db, make_vendor, make_purchase):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)
    service = RepaymentService(db)

    first = service.compute_repayment(purchase.id, date(2025, 2, 10))
    second = service.compute_repayment(purchase.id, date(2025, 2, 10))

    assert first == second


def test_special_agreement_overrides_tiers(db, make_vendor, make_purchase):
    vendor = make_vendor(special_agreement_active=True, special_agreement_amount_cents=5_000)
    purchase = make_purchase(vendor, 10_000, PURCHASED)
    service = RepaymentService(db)

    for as_of in (date(2025, 1, 2), date(2025, 1, 20), date(2025, 6, 1)):
        breakdown = service.compute_repayment(purchase.id, as_of)
        assert breakdown.payable_cents == 5_000
        assert breakdown.tier_type == "agreement"


def test_vendor_custom_tiers(db, make_vendor, make_purchase):
    vendor = make_vendor(
        override_global_tiers=True,
        custom_discount_tiers=[{"period_start": 0, "period_end": 20, "rate": 3.0, "tier_name": "Loyal"}],
        custom_interest_tiers=[{"period_start": 30, "period_end": None, "rate": 1.0, "tier_name": "Late"}],
    )
    purchase = make_purchase(vendor, 10_000, PURCHASED)

    breakdown = RepaymentService(db).compute_repayment(purchase.id, date(2025, 1, 16))

    assert breakdown.payable_cents == 9_700
    assert breakdown.tier_name == "Loyal"


def test_full_repayment_settles_purchase(db, make_vendor, make_purchase):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)
    vendor_id, purchase_id = vendor.id, purchase.id
    service = RepaymentService(db)

    repayment = service.submit_repayment(purchase_id, payment_reference="pay_123", as_of=date(2025, 1, 6))

    assert repayment.principal_cents == 10_000
    assert repayment.amount_paid_cents == 9_500
    assert repayment.discount_cents == 500
    assert repayment.tier_type == "discount"
    assert repayment.payment_reference == "pay_123"

    purchase = db.get(CreditPurchase, purchase_id)
    assert purchase.status == "repaid"
    assert purchase.repaid_cents == 10_000
    assert purchase.amount_paid_cents == 9_500
    assert purchase.repaid_at is not None
    assert purchase.lifecycle_state == "repaid"
    assert db.get(Vendor, vendor_id).outstanding_credit_cents == 0
    assert [e.type for e in service.outbox] == ["repayment_success"]


def test_partial_repayment_then_rest(db, make_vendor, make_purchase):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)
    vendor_id, purchase_id = vendor.id, purchase.id
    service = RepaymentService(db)

    first = service.submit_repayment(purchase_id, principal_cents=4_000, as_of=date(2025, 1, 16))
    assert first.amount_paid_cents == 4_000
    assert db.get(CreditPurchase, purchase_id).status == "partially_repaid"
    assert db.get(Vendor, vendor_id).outstanding_credit_cents == 6_000
    assert service.outbox == []

    quote = service.compute_repayment(purchase_id, date(2025, 2, 10))
    assert quote.principal_cents == 6_000
    assert quote.payable_cents == 6_120

    service.submit_repayment(purchase_id, as_of=date(2025, 2, 10))
    purchase = db.get(CreditPurchase, purchase_id)
    assert purchase.status == "repaid"
    assert purchase.amount_paid_cents == 4_000 + 6_120
    assert len(db.execute(select(CreditRepayment)).scalars().all()) == 2


def test_repayment_not_allowed_on_purchase_day(db, make_vendor, make_purchase):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)

    with pytest.raises(RepaymentNotAllowed) as exc_info:
        RepaymentService(db).submit_repayment(purchase.id, as_of=PURCHASED)

    assert exc_info.value.earliest_date == "2025-01-02"


def test_over_repayment_rejected(db, make_vendor, make_purchase):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)

    with pytest.raises(RepaymentNotAllowed):
        RepaymentService(db).submit_repayment(purchase.id, principal_cents=10_001, as_of=date(2025, 1, 6))

    assert db.get(CreditPurchase, purchase.id).repaid_cents == 0


def test_second_full_repayment_rejected(db, make_vendor, make_purchase):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)
    service = RepaymentService(db)
    service.submit_repayment(purchase.id, as_of=date(2025, 1, 6))

    with pytest.raises(RepaymentNotAllowed):
        service.submit_repayment(purchase.id, as_of=date(2025, 1, 7))


def test_projection_points(db, make_vendor, make_purchase):
    vendor = make_vendor()
    purchase = make_purchase(vendor, 10_000, PURCHASED)

    points = RepaymentService(db).project_repayment(purchase.id)

    assert [(p.day_offset, p.breakdown.payable_cents) for p in points] == [
        (0, 9_500),
        (10, 10_000),
        (30, 10_200),
        (60, 10_500),
    ]


def test_unknown_purchase(db):
    with pytest.raises(PurchaseNotFound):
        RepaymentService(db).compute_repayment(uuid.uuid4(), date(2025, 1, 6))

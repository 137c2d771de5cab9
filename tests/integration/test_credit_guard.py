"""Integration tests for the credit limit guard"""

import threading
from unittest.mock import patch
import pytest
from datetime import date
from prometheus_client import REGISTRY
from sqlalchemy import select
from credit_settlement.config import settings
from credit_settlement.domain.exceptions import (
    AboveMaximumPurchase,
    BelowMinimumPurchase,
    CreditLimitExceeded,
    StaleWrite,
    VendorNotApproved,
    VendorNotFound,
)
from credit_settlement.infrastructure.database.models import CreditPurchase, Vendor, VendorNotification
from credit_settlement.services.credit_guard import CreditLimitGuard


def test_purchase_reserves_credit(db, make_vendor):
    vendor = make_vendor(credit_limit_cents=100_000, repayment_days=30)

    purchase = CreditLimitGuard(db).evaluate_credit_purchase(vendor.id, 20_000, as_of=date(2025, 3, 1))

    assert purchase.principal_cents == 20_000
    assert purchase.purchase_date == date(2025, 3, 1)
    assert purchase.due_date == date(2025, 3, 31)
    assert purchase.status == "pending"
    db.refresh(vendor)
    assert vendor.outstanding_credit_cents == 20_000


def test_limit_exceeded_leaves_no_trace(db, make_vendor):
    vendor = make_vendor(credit_limit_cents=100_000, outstanding_credit_cents=90_000)

    with pytest.raises(CreditLimitExceeded) as exc_info:
        CreditLimitGuard(db).evaluate_credit_purchase(vendor.id, 15_000)

    assert exc_info.value.available_cents == 10_000
    db.refresh(vendor)
    assert vendor.outstanding_credit_cents == 90_000
    assert db.execute(select(CreditPurchase)).first() is None


def test_purchase_up_to_exact_limit(db, make_vendor):
    vendor = make_vendor(credit_limit_cents=100_000, outstanding_credit_cents=90_000)

    CreditLimitGuard(db).evaluate_credit_purchase(vendor.id, 10_000)

    db.refresh(vendor)
    assert vendor.outstanding_credit_cents == 100_000


def test_order_value_bounds(db, make_vendor, monkeypatch):
    vendor = make_vendor(credit_limit_cents=1_000_000)
    monkeypatch.setattr(settings, "min_purchase_cents", 5_000)
    monkeypatch.setattr(settings, "max_purchase_cents", 10_000)
    guard = CreditLimitGuard(db)

    with pytest.raises(BelowMinimumPurchase):
        guard.evaluate_credit_purchase(vendor.id, 4_999)
    with pytest.raises(AboveMaximumPurchase):
        guard.evaluate_credit_purchase(vendor.id, 10_001)


def test_vendor_must_exist_and_be_approved(db, make_vendor):
    import uuid

    pending = make_vendor(status="pending")
    guard = CreditLimitGuard(db)

    with pytest.raises(VendorNotApproved):
        guard.evaluate_credit_purchase(pending.id, 1_000)
    with pytest.raises(VendorNotFound):
        guard.evaluate_credit_purchase(uuid.uuid4(), 1_000)


def test_high_utilization_warns_once_per_window(db, make_vendor):
    vendor = make_vendor(credit_limit_cents=100_000, outstanding_credit_cents=70_000)
    guard = CreditLimitGuard(db)

    guard.evaluate_credit_purchase(vendor.id, 11_000, as_of=date(2025, 3, 3))
    guard.evaluate_credit_purchase(vendor.id, 1_000, as_of=date(2025, 3, 4))

    warnings = db.execute(
        select(VendorNotification).where(VendorNotification.type == "high_utilization")
    ).scalars().all()
    assert len(warnings) == 1
    assert warnings[0].details["utilization"] == 81.0
    assert len(guard.outbox) == 1


def test_no_warning_below_threshold(db, make_vendor):
    vendor = make_vendor(credit_limit_cents=100_000)
    guard = CreditLimitGuard(db)

    guard.evaluate_credit_purchase(vendor.id, 50_000)

    assert guard.outbox == []


def test_concurrent_purchases_never_exceed_limit(db, session_factory, make_vendor):
    """Test limit 100000, outstanding 90000, two concurrent 8000 requests: exactly one approved"""
    vendor = make_vendor(credit_limit_cents=100_000, outstanding_credit_cents=90_000)
    vendor_id = vendor.id
    db.close()

    barrier = threading.Barrier(2)
    outcomes = []

    def buy():
        session = session_factory()
        try:
            barrier.wait()
            CreditLimitGuard(session).evaluate_credit_purchase(vendor_id, 8_000)
            outcomes.append("approved")
        except CreditLimitExceeded:
            outcomes.append("limit_exceeded")
        finally:
            session.close()

    threads = [threading.Thread(target=buy) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["approved", "limit_exceeded"]

    check = session_factory()
    try:
        assert check.get(Vendor, vendor_id).outstanding_credit_cents == 98_000
        assert len(check.execute(select(CreditPurchase)).scalars().all()) == 1
    finally:
        check.close()


def test_many_concurrent_purchases_respect_limit(db, session_factory, make_vendor):
    vendor = make_vendor(credit_limit_cents=50_000)
    vendor_id = vendor.id
    db.close()

    barrier = threading.Barrier(8)
    approved = []

    def buy():
        session = session_factory()
        try:
            barrier.wait()
            CreditLimitGuard(session).evaluate_credit_purchase(vendor_id, 10_000)
            approved.append(1)
        except CreditLimitExceeded:
            pass
        finally:
            session.close()

    threads = [threading.Thread(target=buy) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(approved) == 5
    check = session_factory()
    try:
        assert check.get(Vendor, vendor_id).outstanding_credit_cents == 50_000
    finally:
        check.close()


def test_failed_utilization_warning_keeps_committed_purchase(db, make_vendor):
    """Test a conflict in the warning step still returns the reserved purchase"""
    vendor = make_vendor(credit_limit_cents=100_000)
    vendor_id = vendor.id
    guard = CreditLimitGuard(db)

    with patch.object(CreditLimitGuard, "_warn_if_high_utilization", side_effect=StaleWrite("conflict")):
        purchase = guard.evaluate_credit_purchase(vendor_id, 20_000)

    assert purchase.principal_cents == 20_000
    assert guard.outbox == []
    assert len(db.execute(select(CreditPurchase)).scalars().all()) == 1
    assert db.get(Vendor, vendor_id).outstanding_credit_cents == 20_000


def test_warning_retry_counts_approval_once(db, make_vendor):
    vendor = make_vendor(credit_limit_cents=100_000, outstanding_credit_cents=70_000)
    guard = CreditLimitGuard(db)
    create_once = guard.notifications.create_once
    calls = []

    def flaky_create_once(event, key):
        calls.append(key)
        if len(calls) == 1:
            raise StaleWrite("conflict")
        return create_once(event, key)

    approved_before = REGISTRY.get_sample_value("credit_purchase_decision_total", {"outcome": "approved"}) or 0
    observed_before = REGISTRY.get_sample_value("credit_utilization_percent_count") or 0

    with patch.object(guard.notifications, "create_once", side_effect=flaky_create_once):
        guard.evaluate_credit_purchase(vendor.id, 11_000, as_of=date(2025, 3, 3))

    assert len(calls) == 2
    assert [e.type for e in guard.outbox] == ["high_utilization"]
    assert REGISTRY.get_sample_value("credit_purchase_decision_total", {"outcome": "approved"}) == approved_before + 1
    assert REGISTRY.get_sample_value("credit_utilization_percent_count") == observed_before + 1

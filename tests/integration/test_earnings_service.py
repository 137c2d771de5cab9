"""Integration tests for delivery earnings"""

import threading
import uuid
import pytest
from sqlalchemy import select
from credit_settlement.domain.exceptions import OrderNotFound
from credit_settlement.infrastructure.database.models import Order, VendorEarning, VendorEarningLine
from credit_settlement.services.earnings import EarningsService


def test_delivery_records_earnings(db, make_vendor, make_order):
    vendor = make_vendor()
    order = make_order(vendor, [("rice-5kg", 2, 55_000, 50_000), ("oil-1l", 3, 16_000, 15_000)])

    entries = EarningsService(db).record_delivery(order.id)

    assert len(entries) == 1
    entry = entries[0]
    assert entry.vendor_id == vendor.id
    assert entry.earnings_cents == 2 * 5_000 + 3 * 1_000
    assert entry.price_difference_cents == 5_000 + 1_000
    assert sorted(line.product_id for line in entry.lines) == ["oil-1l", "rice-5kg"]
    assert db.get(Order, order.id).delivered_at is not None


def test_negative_lines_are_dropped(db, make_vendor, make_order):
    vendor = make_vendor()
    order = make_order(vendor, [("rice-5kg", 1, 55_000, 50_000), ("sugar-1kg", 4, 4_000, 4_500)])

    entry = EarningsService(db).record_delivery(order.id)[0]

    assert entry.earnings_cents == 5_000
    assert [line.product_id for line in entry.lines] == ["rice-5kg"]


def test_record_delivery_twice_writes_one_entry(db, make_vendor, make_order):
    """Test retrying delivery confirmation returns the first entry unchanged"""
    vendor = make_vendor()
    order = make_order(vendor, [("rice-5kg", 2, 55_000, 50_000)])
    service = EarningsService(db)

    first = service.record_delivery(order.id)
    first_id = first[0].id
    second = service.record_delivery(order.id)

    assert second[0].id == first_id
    assert len(db.execute(select(VendorEarning)).scalars().all()) == 1
    assert len(db.execute(select(VendorEarningLine)).scalars().all()) == 1


def test_existing_entry_is_not_recomputed(db, make_vendor, make_order):
    vendor = make_vendor()
    order = make_order(vendor, [("rice-5kg", 2, 55_000, 50_000)])
    service = EarningsService(db)
    service.record_delivery(order.id)

    # Price correction after the fact must not touch the ledger
    order.items[0].price_to_user_cents = 70_000
    db.commit()

    entry = service.record_delivery(order.id)[0]
    assert entry.earnings_cents == 10_000


@pytest.mark.parametrize(
    "payment_status, assigned_to, is_escalated",
    [
        ("pending", "vendor", False),
        ("partially_paid", "vendor", False),
        ("fully_paid", "admin", False),
        ("fully_paid", "vendor", True),
    ],
)
def test_ineligible_orders_earn_nothing(db, make_vendor, make_order, payment_status, assigned_to, is_escalated):
    vendor = make_vendor()
    order = make_order(
        vendor,
        [("rice-5kg", 2, 55_000, 50_000)],
        payment_status=payment_status,
        assigned_to=assigned_to,
        is_escalated=is_escalated,
    )

    assert EarningsService(db).record_delivery(order.id) == []
    assert db.execute(select(VendorEarning)).first() is None


def test_order_without_vendor_earns_nothing(db, make_order):
    order = make_order(None, [("rice-5kg", 2, 55_000, 50_000)])

    assert EarningsService(db).record_delivery(order.id) == []


def test_no_price_difference_writes_nothing(db, make_vendor, make_order):
    vendor = make_vendor()
    order = make_order(vendor, [("rice-5kg", 2, 50_000, 50_000)])

    assert EarningsService(db).record_delivery(order.id) == []
    assert db.execute(select(VendorEarning)).first() is None


def test_unknown_order(db):
    with pytest.raises(OrderNotFound):
        EarningsService(db).record_delivery(uuid.uuid4())


def test_concurrent_delivery_confirmations(db, session_factory, make_vendor, make_order):
    vendor = make_vendor()
    order = make_order(vendor, [("rice-5kg", 2, 55_000, 50_000)])
    order_id = order.id
    db.close()

    barrier = threading.Barrier(4)
    results = []

    def confirm():
        session = session_factory()
        try:
            barrier.wait()
            entries = EarningsService(session).record_delivery(order_id)
            results.append(str(entries[0].id))
        finally:
            session.close()

    threads = [threading.Thread(target=confirm) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 4
    assert len(set(results)) == 1

    check = session_factory()
    try:
        entries = check.execute(select(VendorEarning)).scalars().all()
        assert len(entries) == 1
        assert entries[0].earnings_cents == 10_000
    finally:
        check.close()

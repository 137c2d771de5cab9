"""Integration tests for the geofence exclusivity guard"""

import threading
import pytest
from sqlalchemy import select
from credit_settlement.domain.exceptions import ConfigurationError, VendorExists
from credit_settlement.infrastructure.database.models import Vendor
from credit_settlement.services.geofence_guard import GeofenceGuard

BANGALORE = (12.9716, 77.5946)
NEARBY = (13.0716, 77.5946)  # ~11km north
FAR_AWAY = (13.3016, 77.5946)  # ~37km north


def test_register_creates_pending_vendor(db):
    vendor = GeofenceGuard(db).register_vendor(
        name="Fresh Mart",
        latitude=BANGALORE[0],
        longitude=BANGALORE[1],
        credit_limit_cents=100_000,
        phone="+910000000001",
    )

    assert vendor.status == "pending"
    assert vendor.credit_limit_cents == 100_000
    assert vendor.outstanding_credit_cents == 0
    assert vendor.repayment_days == 30


def test_register_rejects_vendor_inside_radius(db, make_vendor):
    existing = make_vendor(latitude=BANGALORE[0], longitude=BANGALORE[1])
    existing_id = str(existing.id)

    with pytest.raises(VendorExists) as exc_info:
        GeofenceGuard(db).register_vendor(name="Too Close", latitude=NEARBY[0], longitude=NEARBY[1])

    assert exc_info.value.nearby_vendor_id == existing_id
    assert 10.0 < exc_info.value.distance_km < 12.0
    assert exc_info.value.radius_km == 20.0
    assert len(db.execute(select(Vendor)).scalars().all()) == 1


def test_register_allows_vendor_outside_radius(db, make_vendor):
    make_vendor(latitude=BANGALORE[0], longitude=BANGALORE[1])

    vendor = GeofenceGuard(db).register_vendor(name="Far Enough", latitude=FAR_AWAY[0], longitude=FAR_AWAY[1])

    assert vendor.status == "pending"


def test_pending_vendor_blocks_area(db, make_vendor):
    make_vendor(latitude=BANGALORE[0], longitude=BANGALORE[1], status="pending")

    with pytest.raises(VendorExists):
        GeofenceGuard(db).register_vendor(name="Too Close", latitude=NEARBY[0], longitude=NEARBY[1])


def test_rejected_vendor_does_not_block_area(db, make_vendor):
    make_vendor(latitude=BANGALORE[0], longitude=BANGALORE[1], status="rejected")

    vendor = GeofenceGuard(db).register_vendor(name="Replacement", latitude=NEARBY[0], longitude=NEARBY[1])

    assert vendor.status == "pending"


def test_nearest_conflict_is_reported(db, make_vendor):
    make_vendor(latitude=13.1516, longitude=77.5946)  # ~8.9km from probe
    closest = make_vendor(latitude=13.0316, longitude=77.5946, status="pending")  # ~4.4km
    closest_id = str(closest.id)

    with pytest.raises(VendorExists) as exc_info:
        GeofenceGuard(db, radius_km=20.0).register_vendor(name="Probe", latitude=13.0716, longitude=77.5946)

    assert exc_info.value.nearby_vendor_id == closest_id


def test_custom_radius(db, make_vendor):
    make_vendor(latitude=BANGALORE[0], longitude=BANGALORE[1])

    vendor = GeofenceGuard(db, radius_km=5.0).register_vendor(name="Small Radius", latitude=NEARBY[0], longitude=NEARBY[1])

    assert vendor.status == "pending"


def test_repayment_days_must_fit_global_tiers(db):
    with pytest.raises(ConfigurationError):
        # Default discount tier runs to day 10
        GeofenceGuard(db).register_vendor(name="Short Cycle", latitude=0.0, longitude=0.0, repayment_days=5)

    assert db.execute(select(Vendor)).first() is None


def test_approve_vendor(db):
    guard = GeofenceGuard(db)
    vendor = guard.register_vendor(name="Fresh Mart", latitude=BANGALORE[0], longitude=BANGALORE[1])

    approved = guard.approve_vendor(vendor.id)

    assert approved.status == "approved"
    assert approved.approved_at is not None


def test_approve_rechecks_area(db, make_vendor):
    first = make_vendor(latitude=BANGALORE[0], longitude=BANGALORE[1], status="pending")
    make_vendor(latitude=NEARBY[0], longitude=NEARBY[1], status="approved")

    with pytest.raises(VendorExists):
        GeofenceGuard(db).approve_vendor(first.id)

    db.refresh(first)
    assert first.status == "pending"


def test_concurrent_registrations_in_same_area(db, session_factory):
    """Test two simultaneous registrations within the radius: exactly one succeeds"""
    db.close()
    barrier = threading.Barrier(2)
    outcomes = []

    def register(name, point):
        session = session_factory()
        try:
            barrier.wait()
            GeofenceGuard(session).register_vendor(name=name, latitude=point[0], longitude=point[1])
            outcomes.append("registered")
        except VendorExists:
            outcomes.append("vendor_exists")
        finally:
            session.close()

    threads = [
        threading.Thread(target=register, args=("North", NEARBY)),
        threading.Thread(target=register, args=("Centre", BANGALORE)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["registered", "vendor_exists"]

    check = session_factory()
    try:
        assert len(check.execute(select(Vendor)).scalars().all()) == 1
    finally:
        check.close()


def test_concurrent_registrations_in_different_areas(db, session_factory):
    db.close()
    barrier = threading.Barrier(2)
    outcomes = []

    def register(name, point):
        session = session_factory()
        try:
            barrier.wait()
            GeofenceGuard(session).register_vendor(name=name, latitude=point[0], longitude=point[1])
            outcomes.append("registered")
        finally:
            session.close()

    threads = [
        threading.Thread(target=register, args=("Bangalore", BANGALORE)),
        threading.Thread(target=register, args=("Mumbai", (19.0760, 72.8777))),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes == ["registered", "registered"]

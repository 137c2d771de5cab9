"""Pytest fixtures for testing"""

import pytest
from datetime import date, timedelta
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

from credit_settlement.api.main import create_app
from credit_settlement.config import settings
from credit_settlement.infrastructure.database.models import Base, CreditPurchase, Order, OrderItem, Vendor
from credit_settlement.infrastructure.database.session import build_engine, get_db


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Small order bounds and fast retries for tests"""
    monkeypatch.setattr(settings, "min_purchase_cents", 100)
    monkeypatch.setattr(settings, "max_purchase_cents", 10_000_000)
    monkeypatch.setattr(settings, "stale_write_backoff_base", 0.01)
    monkeypatch.setattr(settings, "notification_dispatcher_url", None)
    monkeypatch.setattr(settings, "lifecycle_sweep_enabled", False)


@pytest.fixture
def engine(tmp_path):
    """SQLite database file per test; threads get their own connections"""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create test database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_vendor(db: Session):
    """Insert a vendor row directly, approved unless told otherwise"""
    counter = {"n": 0}

    def _make(
        latitude: float = 12.9716,
        longitude: float = 77.5946,
        credit_limit_cents: int = 100_000,
        outstanding_credit_cents: int = 0,
        status: str = "approved",
        repayment_days: int = 30,
        **policy,
    ) -> Vendor:
        counter["n"] += 1
        fields = dict(
            override_global_tiers=False,
            custom_discount_tiers=[],
            custom_interest_tiers=[],
            special_agreement_active=False,
        )
        fields.update(policy)
        vendor = Vendor(
            name=f"Vendor {counter['n']}",
            phone=f"+9100000000{counter['n']:02d}",
            latitude=latitude,
            longitude=longitude,
            status=status,
            credit_limit_cents=credit_limit_cents,
            outstanding_credit_cents=outstanding_credit_cents,
            repayment_days=repayment_days,
            **fields,
        )
        db.add(vendor)
        db.commit()
        return vendor

    return _make


@pytest.fixture
def make_purchase(db: Session):
    """Insert a purchase dated in the past, reserving its principal on the vendor"""

    def _make(vendor: Vendor, principal_cents: int, purchase_date: date, repayment_days: int = 30) -> CreditPurchase:
        vendor.outstanding_credit_cents += principal_cents
        purchase = CreditPurchase(
            vendor_id=vendor.id,
            principal_cents=principal_cents,
            purchase_date=purchase_date,
            due_date=purchase_date + timedelta(days=repayment_days),
            status="pending",
            repaid_cents=0,
            amount_paid_cents=0,
            lifecycle_state="pending",
        )
        db.add(purchase)
        db.commit()
        return purchase

    return _make


@pytest.fixture
def make_order(db: Session):
    def _make(
        vendor: Vendor | None,
        items: list[tuple[str, int, int, int]],
        payment_status: str = "fully_paid",
        assigned_to: str | None = "vendor",
        is_escalated: bool = False,
    ) -> Order:
        """items: (product_id, quantity, price_to_user_cents, price_to_vendor_cents)"""
        order = Order(
            vendor_id=vendor.id if vendor is not None else None,
            payment_status=payment_status,
            assigned_to=assigned_to,
            is_escalated=is_escalated,
            items=[
                OrderItem(
                    product_id=product_id,
                    quantity=quantity,
                    price_to_user_cents=to_user,
                    price_to_vendor_cents=to_vendor,
                )
                for product_id, quantity, to_user, to_vendor in items
            ],
        )
        db.add(order)
        db.commit()
        return order

    return _make

"""SQLAlchemy ORM models for vendors, credit purchases, earnings and notifications"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Vendor(Base):
    """Field vendor with a credit line and an exclusive service area"""

    __tablename__ = "vendor"
    __table_args__ = (
        CheckConstraint("outstanding_credit_cents >= 0", name="ck_vendor_outstanding_non_negative"),
        CheckConstraint("outstanding_credit_cents <= credit_limit_cents", name="ck_vendor_within_limit"),
        CheckConstraint("repayment_days > 0", name="ck_vendor_repayment_days_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=True)
    latitude = Column(Float, nullable=False, index=True)
    longitude = Column(Float, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    performance_tier = Column(Text, nullable=False, default="not_rated")

    credit_limit_cents = Column(BigInteger, nullable=False, default=0)
    outstanding_credit_cents = Column(BigInteger, nullable=False, default=0)

    # Credit policy
    repayment_days = Column(Integer, nullable=False, default=30)
    override_global_tiers = Column(Boolean, nullable=False, default=False)
    custom_discount_tiers = Column(JSON, nullable=False, default=list)
    custom_interest_tiers = Column(JSON, nullable=False, default=list)
    special_agreement_active = Column(Boolean, nullable=False, default=False)
    special_agreement_amount_cents = Column(BigInteger, nullable=True)
    special_agreement_notes = Column(Text, nullable=True)

    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    purchases = relationship("CreditPurchase", back_populates="vendor")
    earnings = relationship("VendorEarning", back_populates="vendor")


class GlobalTierConfig(Base):
    """System-wide default tier tables (single row, id=1)"""

    __tablename__ = "global_tier_config"

    id = Column(Integer, primary_key=True, default=1)
    repayment_days = Column(Integer, nullable=False)
    discount_tiers = Column(JSON, nullable=False, default=list)
    interest_tiers = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class CreditPurchase(Base):
    """Purchase made on deferred credit; principal is immutable once created"""

    __tablename__ = "credit_purchase"
    __table_args__ = (
        CheckConstraint("repaid_cents >= 0", name="ck_purchase_repaid_non_negative"),
        CheckConstraint("repaid_cents <= principal_cents", name="ck_purchase_repaid_within_principal"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendor.id", ondelete="CASCADE"), nullable=False, index=True)
    principal_cents = Column(BigInteger, nullable=False)
    purchase_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    repaid_cents = Column(BigInteger, nullable=False, default=0)
    amount_paid_cents = Column(BigInteger, nullable=False, default=0)
    repaid_at = Column(DateTime(timezone=True), nullable=True)
    lifecycle_state = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor", back_populates="purchases")
    repayments = relationship("CreditRepayment", back_populates="purchase", cascade="all, delete-orphan")


class CreditRepayment(Base):
    """Single repayment against a credit purchase"""

    __tablename__ = "credit_repayment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    purchase_id = Column(UUID(as_uuid=True), ForeignKey("credit_purchase.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    principal_cents = Column(BigInteger, nullable=False)
    amount_paid_cents = Column(BigInteger, nullable=False)
    discount_cents = Column(BigInteger, nullable=False, default=0)
    interest_cents = Column(BigInteger, nullable=False, default=0)
    tier_name = Column(Text, nullable=True)
    tier_type = Column(Text, nullable=False)
    days_elapsed = Column(Integer, nullable=False)
    paid_on = Column(Date, nullable=False)
    payment_reference = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    purchase = relationship("CreditPurchase", back_populates="repayments")


class Order(Base):
    """Buyer order; owned by the order service, read here for earnings"""

    __tablename__ = "customer_order"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendor.id"), nullable=True, index=True)
    payment_status = Column(Text, nullable=False, default="pending")
    assigned_to = Column(Text, nullable=True)  # "vendor" | "admin"
    is_escalated = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "customer_order_item"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("customer_order.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False)
    price_to_user_cents = Column(BigInteger, nullable=False)
    price_to_vendor_cents = Column(BigInteger, nullable=False)

    order = relationship("Order", back_populates="items")


class VendorEarning(Base):
    """Commission ledger entry, written at most once per (order, vendor)"""

    __tablename__ = "vendor_earning"
    __table_args__ = (
        UniqueConstraint("order_id", "vendor_id", name="uq_vendor_earning_order_vendor"),
        CheckConstraint("earnings_cents >= 0", name="ck_vendor_earning_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("customer_order.id"), nullable=False)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendor.id"), nullable=False, index=True)
    earnings_cents = Column(BigInteger, nullable=False)
    price_difference_cents = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    vendor = relationship("Vendor", back_populates="earnings")
    lines = relationship("VendorEarningLine", back_populates="earning", cascade="all, delete-orphan")


class VendorEarningLine(Base):
    __tablename__ = "vendor_earning_line"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    earning_id = Column(UUID(as_uuid=True), ForeignKey("vendor_earning.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False)
    price_difference_cents = Column(BigInteger, nullable=False)
    earnings_cents = Column(BigInteger, nullable=False)

    earning = relationship("VendorEarning", back_populates="lines")


class VendorNotification(Base):
    """Vendor-facing notification; event_key makes lifecycle alerts write-once"""

    __tablename__ = "vendor_notification"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendor.id", ondelete="CASCADE"), nullable=False, index=True)
    purchase_id = Column(UUID(as_uuid=True), ForeignKey("credit_purchase.id", ondelete="CASCADE"), nullable=True)
    type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(Text, nullable=False, default="normal")
    details = Column("metadata", JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    is_dismissed = Column(Boolean, nullable=False, default=False)
    event_key = Column(Text, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GeofenceLock(Base):
    """Lock row per latitude band; serializes onboarding checks in the same area"""

    __tablename__ = "geofence_lock"

    band = Column(Integer, primary_key=True, autoincrement=False)
    version = Column(BigInteger, nullable=False, default=0)

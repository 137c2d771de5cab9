"""Data access layer for vendor credit entities"""

import uuid
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from credit_settlement.config import settings
from credit_settlement.domain.exceptions import DuplicateEarning
from credit_settlement.domain.models import (
    CreditPolicy,
    GlobalTierConfig as TierConfigValue,
    NotificationEvent,
    OrderEarnings,
    RepaymentBreakdown,
    SpecialAgreement,
)
from credit_settlement.domain.tiers import tier_to_dict, tiers_from_json
from credit_settlement.infrastructure.database.models import (
    CreditPurchase,
    CreditRepayment,
    GeofenceLock,
    GlobalTierConfig,
    Order,
    Vendor,
    VendorEarning,
    VendorEarningLine,
    VendorNotification,
)
from credit_settlement.utils.geo import bounding_box, haversine_km

ACTIVE_VENDOR_STATUSES = ("pending", "approved")


def policy_from_vendor(vendor: Vendor) -> CreditPolicy:
    """Map the vendor's stored policy columns to the domain value"""
    return CreditPolicy(
        repayment_days=vendor.repayment_days,
        override_global_tiers=bool(vendor.override_global_tiers),
        custom_discount_tiers=tiers_from_json(vendor.custom_discount_tiers),
        custom_interest_tiers=tiers_from_json(vendor.custom_interest_tiers),
        special_agreement=SpecialAgreement(
            active=bool(vendor.special_agreement_active),
            agreed_amount_cents=vendor.special_agreement_amount_cents,
            notes=vendor.special_agreement_notes or "",
        ),
    )


class VendorRepository:
    """Repository for vendors and their credit fields"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, vendor_id: uuid.UUID) -> Optional[Vendor]:
        return self.db.get(Vendor, vendor_id)

    def create(
        self,
        name: str,
        latitude: float,
        longitude: float,
        credit_limit_cents: int,
        repayment_days: int,
        phone: Optional[str] = None,
    ) -> Vendor:
        vendor = Vendor(
            name=name,
            phone=phone,
            latitude=latitude,
            longitude=longitude,
            status="pending",
            credit_limit_cents=credit_limit_cents,
            outstanding_credit_cents=0,
            repayment_days=repayment_days,
            override_global_tiers=False,
            custom_discount_tiers=[],
            custom_interest_tiers=[],
            special_agreement_active=False,
        )
        self.db.add(vendor)
        self.db.flush()
        return vendor

    def reserve_credit(self, vendor_id: uuid.UUID, amount_cents: int) -> bool:
        """
        Atomically add `amount_cents` to outstanding credit if it still fits the limit.

        Returns False when the conditional update matched no row.
        """
        result = self.db.execute(
            update(Vendor)
            .where(Vendor.id == vendor_id)
            .where(Vendor.outstanding_credit_cents + amount_cents <= Vendor.credit_limit_cents)
            .values(outstanding_credit_cents=Vendor.outstanding_credit_cents + amount_cents)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_credit(self, vendor_id: uuid.UUID, amount_cents: int) -> bool:
        result = self.db.execute(
            update(Vendor)
            .where(Vendor.id == vendor_id)
            .where(Vendor.outstanding_credit_cents >= amount_cents)
            .values(outstanding_credit_cents=Vendor.outstanding_credit_cents - amount_cents)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def set_credit_limit(self, vendor_id: uuid.UUID, new_limit_cents: int) -> bool:
        """Change the limit unless it would fall below current outstanding credit"""
        result = self.db.execute(
            update(Vendor)
            .where(Vendor.id == vendor_id)
            .where(Vendor.outstanding_credit_cents <= new_limit_cents)
            .values(credit_limit_cents=new_limit_cents)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def find_within_radius(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> List[Tuple[Vendor, float]]:
        """Pending/approved vendors within `radius_km`, nearest first"""
        min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius_km)
        query = (
            select(Vendor)
            .where(Vendor.status.in_(ACTIVE_VENDOR_STATUSES))
            .where(Vendor.latitude.between(min_lat, max_lat))
            .where(Vendor.longitude.between(min_lon, max_lon))
        )
        if exclude_id is not None:
            query = query.where(Vendor.id != exclude_id)

        matches = []
        for vendor in self.db.execute(query).scalars():
            distance = haversine_km(latitude, longitude, vendor.latitude, vendor.longitude)
            if distance <= radius_km:
                matches.append((vendor, distance))

        return sorted(matches, key=lambda pair: pair[1])

    def repayment_days_following_global(self) -> List[int]:
        """Distinct repayment periods of active vendors that use the global tiers"""
        rows = self.db.execute(
            select(Vendor.repayment_days)
            .where(Vendor.status.in_(ACTIVE_VENDOR_STATUSES))
            .where(Vendor.override_global_tiers.is_(False))
            .where(Vendor.special_agreement_active.is_(False))
            .distinct()
        )
        return [row[0] for row in rows]


class TierConfigRepository:
    """Repository for the global tier configuration"""

    CONFIG_ID = 1

    def __init__(self, db: Session):
        self.db = db

    def get(self) -> TierConfigValue:
        """Saved configuration, or the defaults from settings if none was saved"""
        row = self.db.get(GlobalTierConfig, self.CONFIG_ID)
        if row is None:
            return TierConfigValue(
                repayment_days=settings.default_repayment_days,
                discount_tiers=tiers_from_json(settings.default_discount_tiers),
                interest_tiers=tiers_from_json(settings.default_interest_tiers),
            )
        return TierConfigValue(
            repayment_days=row.repayment_days,
            discount_tiers=tiers_from_json(row.discount_tiers),
            interest_tiers=tiers_from_json(row.interest_tiers),
        )

    def save(self, config: TierConfigValue) -> GlobalTierConfig:
        row = self.db.get(GlobalTierConfig, self.CONFIG_ID)
        if row is None:
            row = GlobalTierConfig(id=self.CONFIG_ID)
            self.db.add(row)
        row.repayment_days = config.repayment_days
        row.discount_tiers = [tier_to_dict(t) for t in config.discount_tiers]
        row.interest_tiers = [tier_to_dict(t) for t in config.interest_tiers]
        self.db.flush()
        return row


class PurchaseRepository:
    """Repository for credit purchases and their repayments"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, vendor_id: uuid.UUID, principal_cents: int, purchase_date: date, due_date: date) -> CreditPurchase:
        purchase = CreditPurchase(
            vendor_id=vendor_id,
            principal_cents=principal_cents,
            purchase_date=purchase_date,
            due_date=due_date,
            status="pending",
            repaid_cents=0,
            amount_paid_cents=0,
            lifecycle_state="pending",
        )
        self.db.add(purchase)
        self.db.flush()
        return purchase

    def get(self, purchase_id: uuid.UUID) -> Optional[CreditPurchase]:
        return self.db.get(CreditPurchase, purchase_id)

    def list_by_vendor(self, vendor_id: uuid.UUID) -> List[CreditPurchase]:
        return list(
            self.db.execute(
                select(CreditPurchase)
                .where(CreditPurchase.vendor_id == vendor_id)
                .order_by(CreditPurchase.purchase_date.desc())
            ).scalars()
        )

    def list_unsettled_lifecycles(self) -> List[CreditPurchase]:
        """Purchases whose lifecycle has not reached the terminal repaid state"""
        return list(
            self.db.execute(
                select(CreditPurchase)
                .where(CreditPurchase.lifecycle_state != "repaid")
                .order_by(CreditPurchase.due_date)
            ).scalars()
        )

    def apply_repayment(
        self,
        purchase_id: uuid.UUID,
        expected_repaid_cents: int,
        principal_cents: int,
        amount_paid_cents: int,
        fully_repaid: bool,
    ) -> bool:
        """
        Atomically settle principal.

        Matches only while repaid_cents still equals what the caller read, and
        never settles more than remains outstanding.
        """
        values = {
            "repaid_cents": CreditPurchase.repaid_cents + principal_cents,
            "amount_paid_cents": CreditPurchase.amount_paid_cents + amount_paid_cents,
            "status": "repaid" if fully_repaid else "partially_repaid",
        }
        if fully_repaid:
            values["repaid_at"] = datetime.now(timezone.utc)

        result = self.db.execute(
            update(CreditPurchase)
            .where(CreditPurchase.id == purchase_id)
            .where(CreditPurchase.repaid_cents == expected_repaid_cents)
            .where(CreditPurchase.repaid_cents + principal_cents <= CreditPurchase.principal_cents)
            .where(CreditPurchase.status != "repaid")
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def advance_lifecycle(self, purchase_id: uuid.UUID, from_state: str, to_state: str) -> bool:
        """Compare-and-set on lifecycle_state; False if another sweep moved it first"""
        result = self.db.execute(
            update(CreditPurchase)
            .where(CreditPurchase.id == purchase_id)
            .where(CreditPurchase.lifecycle_state == from_state)
            .values(lifecycle_state=to_state)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def add_repayment(
        self,
        purchase: CreditPurchase,
        breakdown: RepaymentBreakdown,
        paid_on: date,
        payment_reference: Optional[str] = None,
    ) -> CreditRepayment:
        repayment = CreditRepayment(
            purchase_id=purchase.id,
            vendor_id=purchase.vendor_id,
            principal_cents=breakdown.principal_cents,
            amount_paid_cents=breakdown.payable_cents,
            discount_cents=breakdown.discount_cents,
            interest_cents=breakdown.interest_cents,
            tier_name=breakdown.tier_name,
            tier_type=breakdown.tier_type,
            days_elapsed=breakdown.days_elapsed,
            paid_on=paid_on,
            payment_reference=payment_reference,
        )
        self.db.add(repayment)
        self.db.flush()
        return repayment


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: uuid.UUID) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def mark_delivered(self, order_id: uuid.UUID) -> None:
        self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.delivered_at.is_(None))
            .values(delivered_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )


class EarningRepository:
    """Repository for the write-once earnings ledger"""

    def __init__(self, db: Session):
        self.db = db

    def get_for_order(self, order_id: uuid.UUID, vendor_id: uuid.UUID) -> Optional[VendorEarning]:
        return self.db.execute(
            select(VendorEarning)
            .where(VendorEarning.order_id == order_id)
            .where(VendorEarning.vendor_id == vendor_id)
        ).scalar_one_or_none()

    def list_by_vendor(self, vendor_id: uuid.UUID) -> List[VendorEarning]:
        return list(
            self.db.execute(
                select(VendorEarning)
                .where(VendorEarning.vendor_id == vendor_id)
                .order_by(VendorEarning.created_at.desc())
            ).scalars()
        )

    def create(self, order_id: uuid.UUID, vendor_id: uuid.UUID, earnings: OrderEarnings) -> VendorEarning:
        """
        Insert the entry and its lines inside a savepoint.

        Raises:
            DuplicateEarning: the (order, vendor) unique constraint fired
        """
        try:
            with self.db.begin_nested():
                entry = VendorEarning(
                    order_id=order_id,
                    vendor_id=vendor_id,
                    earnings_cents=earnings.total_cents,
                    price_difference_cents=earnings.price_difference_cents,
                    lines=[
                        VendorEarningLine(
                            product_id=line.product_id,
                            quantity=line.quantity,
                            price_difference_cents=line.price_difference_cents,
                            earnings_cents=line.earnings_cents,
                        )
                        for line in earnings.lines
                    ],
                )
                self.db.add(entry)
                self.db.flush()
        except IntegrityError as e:
            if self.get_for_order(order_id, vendor_id) is None:
                raise
            raise DuplicateEarning(f"Earnings already recorded for order {order_id}") from e
        return entry


class NotificationRepository:
    """Repository for vendor notifications"""

    def __init__(self, db: Session):
        self.db = db

    def create_once(self, event: NotificationEvent, event_key: Optional[str]) -> Optional[VendorNotification]:
        """Insert the notification; returns None if `event_key` was already used"""
        notification = VendorNotification(
            vendor_id=uuid.UUID(event.vendor_id),
            purchase_id=uuid.UUID(event.purchase_id) if event.purchase_id else None,
            type=event.type,
            title=event.title,
            message=event.message,
            priority=event.priority,
            details=event.metadata,
            event_key=event_key,
        )
        try:
            with self.db.begin_nested():
                self.db.add(notification)
                self.db.flush()
        except IntegrityError:
            if event_key is None or not self.exists(event_key):
                raise
            return None
        return notification

    def exists(self, event_key: str) -> bool:
        return (
            self.db.execute(
                select(VendorNotification.id).where(VendorNotification.event_key == event_key)
            ).first()
            is not None
        )

    def get(self, notification_id: uuid.UUID) -> Optional[VendorNotification]:
        return self.db.get(VendorNotification, notification_id)

    def list_for_vendor(
        self,
        vendor_id: uuid.UUID,
        include_dismissed: bool = False,
        limit: int = 50,
    ) -> List[VendorNotification]:
        query = select(VendorNotification).where(VendorNotification.vendor_id == vendor_id)
        if not include_dismissed:
            query = query.where(VendorNotification.is_dismissed.is_(False))
        return list(
            self.db.execute(query.order_by(VendorNotification.created_at.desc()).limit(limit)).scalars()
        )


class GeofenceRepository:
    """Lock rows that serialize onboarding checks per latitude band"""

    def __init__(self, db: Session):
        self.db = db

    def lock_bands(self, bands: Iterable[int]) -> None:
        """
        Take a write lock on every band, in ascending order.

        Missing rows are created on demand; if a concurrent transaction creates
        the same row first, the insert fails and we lock the existing row.
        """
        for band in sorted(set(bands)):
            if self._bump(band):
                continue
            try:
                with self.db.begin_nested():
                    self.db.add(GeofenceLock(band=band, version=1))
                    self.db.flush()
            except IntegrityError:
                self._bump(band)

    def _bump(self, band: int) -> bool:
        result = self.db.execute(
            update(GeofenceLock)
            .where(GeofenceLock.band == band)
            .values(version=GeofenceLock.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

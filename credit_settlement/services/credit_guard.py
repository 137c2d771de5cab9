"""Credit Limit Guard - approves credit purchases without ever exceeding the vendor limit"""

import logging
import uuid
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from credit_settlement.config import settings
from credit_settlement.domain.alerts import (
    build_high_utilization_event,
    high_utilization_key,
    utilization_percent,
)
from credit_settlement.domain.exceptions import (
    AboveMaximumPurchase,
    BelowMinimumPurchase,
    CreditLimitExceeded,
    StaleWrite,
    VendorNotApproved,
    VendorNotFound,
)
from credit_settlement.domain.models import NotificationEvent
from credit_settlement.domain.tiers import resolve_schedule
from credit_settlement.infrastructure.database.models import CreditPurchase
from credit_settlement.infrastructure.database.repositories import (
    NotificationRepository,
    PurchaseRepository,
    TierConfigRepository,
    VendorRepository,
    policy_from_vendor,
)
from credit_settlement.infrastructure.database.session import atomic
from credit_settlement.infrastructure.observability.metrics import record_credit_decision
from credit_settlement.services.retry import call_with_retry
from credit_settlement.utils.date_utils import add_days, as_date, today

logger = logging.getLogger(__name__)


class CreditLimitGuard:
    """
    Reserves vendor credit with a single conditional UPDATE.

    The row only changes when outstanding + amount still fits the limit, so
    concurrent purchases that jointly exceed it cannot both succeed. The
    purchase row is inserted in the same transaction as the reservation.
    """

    def __init__(self, db: Session):
        self.db = db
        self.vendors = VendorRepository(db)
        self.purchases = PurchaseRepository(db)
        self.tiers = TierConfigRepository(db)
        self.notifications = NotificationRepository(db)
        self.outbox: List[NotificationEvent] = []

    def evaluate_credit_purchase(
        self,
        vendor_id: uuid.UUID,
        amount_cents: int,
        as_of: Optional[Union[date, datetime]] = None,
    ) -> CreditPurchase:
        """
        Approve a purchase on credit or raise.

        Raises:
            BelowMinimumPurchase / AboveMaximumPurchase: amount outside order bounds
            VendorNotFound / VendorNotApproved: vendor cannot buy on credit
            CreditLimitExceeded: reservation would exceed the credit limit
            StaleWrite: reservation conflict persisted through every retry
        """
        if amount_cents < settings.min_purchase_cents:
            record_credit_decision("below_minimum")
            raise BelowMinimumPurchase(
                f"Minimum order value is {settings.min_purchase_cents} (requested {amount_cents})"
            )
        if amount_cents > settings.max_purchase_cents:
            record_credit_decision("above_maximum")
            raise AboveMaximumPurchase(
                f"Maximum order value is {settings.max_purchase_cents} (requested {amount_cents})"
            )

        purchase_date = as_date(as_of) if as_of else today()

        def reserve() -> CreditPurchase:
            with atomic(self.db):
                vendor = self.vendors.get(vendor_id)
                if vendor is None:
                    raise VendorNotFound(f"Vendor {vendor_id} not found")
                if vendor.status != "approved":
                    record_credit_decision("not_approved")
                    raise VendorNotApproved(f"Vendor {vendor_id} is {vendor.status}, not approved")

                schedule = resolve_schedule(policy_from_vendor(vendor), self.tiers.get())

                if not self.vendors.reserve_credit(vendor.id, amount_cents):
                    self.db.refresh(vendor)
                    available = vendor.credit_limit_cents - vendor.outstanding_credit_cents
                    record_credit_decision("limit_exceeded")
                    raise CreditLimitExceeded(str(vendor.id), amount_cents, available)

                purchase = self.purchases.create(
                    vendor_id=vendor.id,
                    principal_cents=amount_cents,
                    purchase_date=purchase_date,
                    due_date=add_days(purchase_date, schedule.repayment_days),
                )
            return purchase

        purchase = call_with_retry(self.db, reserve, "credit_purchase")

        # Reservation is committed; a failed warning is only logged
        try:
            utilization, event = self._warn_if_high_utilization(vendor_id, purchase_date)
        except StaleWrite as e:
            logger.warning(
                f"High utilization check skipped: {e}",
                extra={"vendor_id": str(vendor_id), "purchase_id": str(purchase.id)},
            )
            record_credit_decision("approved")
            return purchase

        record_credit_decision("approved", utilization)
        if event is not None:
            self.outbox.append(event)
        return purchase

    def release_credit(self, vendor_id: uuid.UUID, amount_cents: int) -> bool:
        """Return credit to the vendor; runs inside the caller's transaction"""
        return self.vendors.release_credit(vendor_id, amount_cents)

    def _warn_if_high_utilization(
        self, vendor_id: uuid.UUID, on_date: date
    ) -> Tuple[float, Optional[NotificationEvent]]:
        def check() -> Tuple[float, Optional[NotificationEvent]]:
            with atomic(self.db):
                vendor = self.vendors.get(vendor_id)
                utilization = utilization_percent(vendor.outstanding_credit_cents, vendor.credit_limit_cents)

                if utilization < settings.high_utilization_threshold:
                    return utilization, None

                event = build_high_utilization_event(
                    str(vendor.id), vendor.outstanding_credit_cents, vendor.credit_limit_cents
                )
                key = high_utilization_key(str(vendor.id), on_date, settings.high_utilization_window_days)
                row = self.notifications.create_once(event, key)
                if row is None:
                    return utilization, None
                event.notification_id = str(row.id)

            logger.info(
                "High credit utilization",
                extra={"vendor_id": str(vendor_id), "utilization": round(utilization, 2)},
            )
            return utilization, event

        return call_with_retry(self.db, check, "high_utilization")

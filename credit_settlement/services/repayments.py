"""Repayment flow - amount due, projections and settlement of credit purchases"""

import uuid
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from credit_settlement.domain.exceptions import PurchaseNotFound, RepaymentNotAllowed, StaleWrite
from credit_settlement.domain.lifecycle import STATE_REPAID
from credit_settlement.domain.models import (
    EffectiveSchedule,
    NotificationEvent,
    ProjectionPoint,
    RepaymentBreakdown,
)
from credit_settlement.domain.repayment import (
    calculate_repayment,
    outstanding_breakdown,
    project_repayment_schedule,
    prorate,
)
from credit_settlement.domain.tiers import resolve_schedule
from credit_settlement.infrastructure.database.models import CreditPurchase, CreditRepayment
from credit_settlement.infrastructure.database.repositories import (
    PurchaseRepository,
    TierConfigRepository,
    policy_from_vendor,
)
from credit_settlement.infrastructure.database.session import atomic
from credit_settlement.infrastructure.observability.metrics import repayment_counter
from credit_settlement.services.credit_guard import CreditLimitGuard
from credit_settlement.services.lifecycle_tracker import LifecycleTracker
from credit_settlement.services.retry import call_with_retry
from credit_settlement.utils.date_utils import add_days, as_date, days_between, today


class RepaymentService:
    """Computes what a vendor owes and settles repayments against purchases"""

    def __init__(self, db: Session):
        self.db = db
        self.purchases = PurchaseRepository(db)
        self.tiers = TierConfigRepository(db)
        self.outbox: List[NotificationEvent] = []

    def _load(self, purchase_id: uuid.UUID) -> Tuple[CreditPurchase, EffectiveSchedule]:
        purchase = self.purchases.get(purchase_id)
        if purchase is None:
            raise PurchaseNotFound(f"Credit purchase {purchase_id} not found")
        schedule = resolve_schedule(policy_from_vendor(purchase.vendor), self.tiers.get())
        return purchase, schedule

    def compute_repayment(
        self,
        purchase_id: uuid.UUID,
        as_of: Optional[Union[date, datetime]] = None,
    ) -> RepaymentBreakdown:
        """Payable on `as_of` (default today) for the principal still outstanding"""
        as_of = as_date(as_of) if as_of else today()
        with atomic(self.db):
            purchase, schedule = self._load(purchase_id)
            return outstanding_breakdown(
                purchase.principal_cents,
                purchase.repaid_cents,
                purchase.purchase_date,
                schedule,
                as_of,
            )

    def project_repayment(self, purchase_id: uuid.UUID) -> List[ProjectionPoint]:
        """Payable at each tier boundary, for the principal still outstanding"""
        with atomic(self.db):
            purchase, schedule = self._load(purchase_id)
            points = project_repayment_schedule(purchase.principal_cents, purchase.purchase_date, schedule)
            outstanding = purchase.principal_cents - purchase.repaid_cents
            for point in points:
                point.breakdown = prorate(point.breakdown, outstanding)
            return points

    def submit_repayment(
        self,
        purchase_id: uuid.UUID,
        principal_cents: Optional[int] = None,
        payment_reference: Optional[str] = None,
        as_of: Optional[Union[date, datetime]] = None,
    ) -> CreditRepayment:
        """
        Settle `principal_cents` of the purchase (default: everything outstanding).

        The cash due is the pro-rated amount at the tier that applies today.
        Settled principal is released from the vendor's outstanding credit in
        the same transaction. A full repayment moves the lifecycle to repaid.

        Raises:
            PurchaseNotFound: unknown purchase
            RepaymentNotAllowed: purchase day, already repaid, or more than outstanding
        """
        paid_on = as_date(as_of) if as_of else today()

        def settle() -> Tuple[CreditRepayment, RepaymentBreakdown, bool, Optional[NotificationEvent]]:
            with atomic(self.db):
                purchase, schedule = self._load(purchase_id)

                if purchase.status == "repaid":
                    raise RepaymentNotAllowed("Purchase is already fully repaid")

                # Credit cycle starts the day after purchase
                if days_between(purchase.purchase_date, paid_on) < 1:
                    earliest = add_days(purchase.purchase_date, 1)
                    raise RepaymentNotAllowed(
                        f"Repayment opens on {earliest.isoformat()}, the day after purchase",
                        earliest_date=earliest.isoformat(),
                    )

                outstanding = purchase.principal_cents - purchase.repaid_cents
                portion = outstanding if principal_cents is None else principal_cents
                if portion <= 0:
                    raise RepaymentNotAllowed("Repayment amount must be greater than 0")
                if portion > outstanding:
                    raise RepaymentNotAllowed(
                        f"Repayment of {portion} exceeds outstanding principal {outstanding}"
                    )

                breakdown = prorate(
                    calculate_repayment(purchase.principal_cents, purchase.purchase_date, schedule, paid_on),
                    portion,
                )
                fully_repaid = portion == outstanding

                if not self.purchases.apply_repayment(
                    purchase.id,
                    expected_repaid_cents=purchase.repaid_cents,
                    principal_cents=portion,
                    amount_paid_cents=breakdown.payable_cents,
                    fully_repaid=fully_repaid,
                ):
                    raise StaleWrite(f"Purchase {purchase.id} changed during repayment")

                if not CreditLimitGuard(self.db).release_credit(purchase.vendor_id, portion):
                    raise RepaymentNotAllowed(
                        f"Vendor outstanding credit is lower than the repaid principal {portion}"
                    )

                repayment = self.purchases.add_repayment(purchase, breakdown, paid_on, payment_reference)

                event = None
                if fully_repaid:
                    event = LifecycleTracker(self.db).transition(purchase, STATE_REPAID, breakdown, paid_on)

            return repayment, breakdown, fully_repaid, event

        repayment, breakdown, fully_repaid, event = call_with_retry(self.db, settle, "repayment")

        repayment_counter.labels(tier_type=breakdown.tier_type).inc()
        if event is not None:
            self.outbox.append(event)

        return repayment

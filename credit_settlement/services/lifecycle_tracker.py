"""Repayment Lifecycle Tracker - advances purchases and emits one notification per transition"""

import logging
import uuid
from datetime import date, datetime
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from credit_settlement.config import settings
from credit_settlement.domain.exceptions import ConfigurationError
from credit_settlement.domain.lifecycle import (
    build_transition_event,
    determine_state,
    event_key,
    next_transition,
)
from credit_settlement.domain.models import GlobalTierConfig, NotificationEvent, RepaymentBreakdown
from credit_settlement.domain.repayment import outstanding_breakdown
from credit_settlement.domain.tiers import resolve_schedule
from credit_settlement.infrastructure.database.models import CreditPurchase
from credit_settlement.infrastructure.database.repositories import (
    NotificationRepository,
    PurchaseRepository,
    TierConfigRepository,
    policy_from_vendor,
)
from credit_settlement.infrastructure.database.session import atomic
from credit_settlement.infrastructure.observability.metrics import lifecycle_notification_counter
from credit_settlement.services.retry import call_with_retry
from credit_settlement.utils.date_utils import as_date, today

logger = logging.getLogger(__name__)


class LifecycleTracker:
    def __init__(self, db: Session, due_soon_days: Optional[int] = None):
        self.db = db
        self.due_soon_days = due_soon_days if due_soon_days is not None else settings.due_soon_days
        self.purchases = PurchaseRepository(db)
        self.notifications = NotificationRepository(db)
        self.tiers = TierConfigRepository(db)
        self.outbox: List[NotificationEvent] = []

    def tick(self, as_of: Optional[Union[date, datetime]] = None) -> List[NotificationEvent]:
        """
        Sweep every purchase not yet repaid and emit transition notifications.

        Each purchase is handled in its own transaction. The payable amount is
        recomputed from the current schedule on every sweep. Running the sweep
        again on the same day, or concurrently, emits nothing new.
        """
        as_of = as_date(as_of) if as_of else today()

        def list_ids() -> List[uuid.UUID]:
            with atomic(self.db):
                return [p.id for p in self.purchases.list_unsettled_lifecycles()]

        events = []
        for purchase_id in call_with_retry(self.db, list_ids, "lifecycle_scan"):
            try:
                event = call_with_retry(
                    self.db,
                    lambda: self._sweep_one(purchase_id, as_of),
                    "lifecycle_tick",
                )
            except ConfigurationError as e:
                logger.error(
                    f"Cannot resolve schedule: {e}",
                    extra={"purchase_id": str(purchase_id)},
                )
                continue

            if event is not None:
                lifecycle_notification_counter.labels(type=event.type).inc()
                events.append(event)

        logger.info(
            "Lifecycle sweep completed",
            extra={"as_of": as_of.isoformat(), "notifications": len(events)},
        )
        self.outbox.extend(events)
        return events

    def _sweep_one(self, purchase_id: uuid.UUID, as_of: date) -> Optional[NotificationEvent]:
        with atomic(self.db):
            purchase = self.purchases.get(purchase_id)
            if purchase is None:
                return None
            return self.evaluate(purchase, self.tiers.get(), as_of)

    def evaluate(
        self,
        purchase: CreditPurchase,
        global_config: GlobalTierConfig,
        as_of: date,
    ) -> Optional[NotificationEvent]:
        outstanding = purchase.principal_cents - purchase.repaid_cents
        state = determine_state(outstanding, purchase.due_date, as_of, self.due_soon_days)
        target = next_transition(purchase.lifecycle_state, state)
        if target is None:
            return None

        schedule = resolve_schedule(policy_from_vendor(purchase.vendor), global_config)
        breakdown = outstanding_breakdown(
            purchase.principal_cents,
            purchase.repaid_cents,
            purchase.purchase_date,
            schedule,
            as_of,
        )
        return self.transition(purchase, target, breakdown, as_of)

    def transition(
        self,
        purchase: CreditPurchase,
        target: str,
        breakdown: RepaymentBreakdown,
        as_of: date,
    ) -> Optional[NotificationEvent]:
        """
        Move the purchase into `target` and record its notification.

        Runs inside the caller's transaction. Returns None when another sweep
        already made this transition.
        """
        if not self.purchases.advance_lifecycle(purchase.id, purchase.lifecycle_state, target):
            return None

        event = build_transition_event(
            target,
            vendor_id=str(purchase.vendor_id),
            purchase_id=str(purchase.id),
            breakdown=breakdown,
            due_date=purchase.due_date,
            as_of=as_of,
        )
        row = self.notifications.create_once(event, event_key(str(purchase.id), target))
        if row is None:
            return None

        event.notification_id = str(row.id)
        return event

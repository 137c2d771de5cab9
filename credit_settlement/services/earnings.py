"""Earnings ledger - records vendor commission when an order is delivered"""

import logging
import uuid
from typing import List, Tuple

from sqlalchemy.orm import Session

from credit_settlement.domain.earnings import calculate_order_earnings, is_order_eligible
from credit_settlement.domain.exceptions import DuplicateEarning, OrderNotFound
from credit_settlement.domain.models import EarningItem
from credit_settlement.infrastructure.database.models import VendorEarning
from credit_settlement.infrastructure.database.repositories import EarningRepository, OrderRepository
from credit_settlement.infrastructure.database.session import atomic
from credit_settlement.infrastructure.observability.metrics import earnings_counter
from credit_settlement.services.retry import call_with_retry

logger = logging.getLogger(__name__)


class EarningsService:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.earnings = EarningRepository(db)

    def record_delivery(self, order_id: uuid.UUID) -> List[VendorEarning]:
        """
        Mark the order delivered and write its earnings entry.

        Safe to call any number of times: an existing entry for the
        (order, vendor) pair is returned as-is and never recomputed.
        Ineligible orders, and orders without a positive price difference,
        produce no entry.
        """

        def record() -> Tuple[List[VendorEarning], str]:
            with atomic(self.db):
                order = self.orders.get(order_id)
                if order is None:
                    raise OrderNotFound(f"Order {order_id} not found")

                self.orders.mark_delivered(order.id)

                if not is_order_eligible(order.payment_status, order.vendor_id, order.assigned_to, order.is_escalated):
                    return [], "ineligible"

                existing = self.earnings.get_for_order(order.id, order.vendor_id)
                if existing is not None:
                    return [existing], "existing"

                computed = calculate_order_earnings(
                    EarningItem(
                        product_id=item.product_id,
                        quantity=item.quantity,
                        price_to_user_cents=item.price_to_user_cents,
                        price_to_vendor_cents=item.price_to_vendor_cents,
                    )
                    for item in order.items
                )
                if not computed.lines:
                    return [], "no_difference"

                try:
                    entry = self.earnings.create(order.id, order.vendor_id, computed)
                except DuplicateEarning:
                    return [self.earnings.get_for_order(order.id, order.vendor_id)], "existing"
            return [entry], "recorded"

        entries, outcome = call_with_retry(self.db, record, "record_delivery")

        earnings_counter.labels(outcome=outcome).inc()
        logger.info(
            "Delivery processed",
            extra={"order_id": str(order_id), "earnings_outcome": outcome},
        )
        return entries

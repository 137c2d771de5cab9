"""Policy editor boundary - validated writes of tier tables, vendor policies and credit limits"""

import logging
import uuid
from typing import List

from sqlalchemy.orm import Session

from credit_settlement.domain.alerts import build_credit_limit_increase_event
from credit_settlement.domain.exceptions import ConfigurationError, InvalidCreditAdjustment, VendorNotFound
from credit_settlement.domain.models import CreditPolicy, GlobalTierConfig, NotificationEvent
from credit_settlement.domain.tiers import by_start, tier_to_dict, validate_policy, validate_schedule
from credit_settlement.infrastructure.database.models import Vendor
from credit_settlement.infrastructure.database.repositories import (
    NotificationRepository,
    TierConfigRepository,
    VendorRepository,
)
from credit_settlement.infrastructure.database.session import atomic
from credit_settlement.services.retry import call_with_retry

logger = logging.getLogger(__name__)

PERFORMANCE_TIERS = ("not_rated", "bronze", "silver", "gold", "platinum")
MIN_REASON_LENGTH = 10


class PolicyService:
    """
    Every write is validated against the schedule it would produce.

    A rejected write raises before anything is flushed, so stored policies
    are always resolvable by the repayment calculator.
    """

    def __init__(self, db: Session):
        self.db = db
        self.vendors = VendorRepository(db)
        self.tiers = TierConfigRepository(db)
        self.notifications = NotificationRepository(db)
        self.outbox: List[NotificationEvent] = []

    def get_global_tiers(self) -> GlobalTierConfig:
        with atomic(self.db):
            return self.tiers.get()

    def update_global_tiers(self, config: GlobalTierConfig) -> GlobalTierConfig:
        """
        Replace the global tier tables.

        The tables must be valid for the default repayment period and for
        every active vendor that follows them.
        """

        def save() -> GlobalTierConfig:
            with atomic(self.db):
                discounts, interests = validate_schedule(
                    config.discount_tiers, config.interest_tiers, config.repayment_days
                )
                for days in self.vendors.repayment_days_following_global():
                    try:
                        validate_schedule(config.discount_tiers, config.interest_tiers, days)
                    except ConfigurationError as e:
                        raise ConfigurationError(
                            f"Tiers conflict with vendors on a {days}-day repayment period: {e}"
                        ) from e
                self.tiers.save(GlobalTierConfig(config.repayment_days, list(discounts), list(interests)))
                saved = self.tiers.get()
            return saved

        saved = call_with_retry(self.db, save, "update_global_tiers")
        logger.info(
            "Global tiers updated",
            extra={
                "repayment_days": saved.repayment_days,
                "discount_tiers": len(saved.discount_tiers),
                "interest_tiers": len(saved.interest_tiers),
            },
        )
        return saved

    def update_vendor_policy(self, vendor_id: uuid.UUID, policy: CreditPolicy) -> Vendor:
        """
        Save a vendor's credit policy.

        Raises:
            ConfigurationError: custom tiers, repayment period or agreement invalid
        """

        def save() -> Vendor:
            with atomic(self.db):
                vendor = self._get_vendor(vendor_id)
                validate_policy(policy, self.tiers.get())

                agreement = policy.special_agreement
                vendor.repayment_days = policy.repayment_days
                vendor.override_global_tiers = policy.override_global_tiers
                vendor.custom_discount_tiers = [tier_to_dict(t) for t in by_start(policy.custom_discount_tiers)]
                vendor.custom_interest_tiers = [tier_to_dict(t) for t in by_start(policy.custom_interest_tiers)]
                vendor.special_agreement_active = agreement.active
                vendor.special_agreement_amount_cents = agreement.agreed_amount_cents
                vendor.special_agreement_notes = agreement.notes or None
            return vendor

        vendor = call_with_retry(self.db, save, "update_vendor_policy")
        logger.info(
            "Vendor credit policy updated",
            extra={
                "vendor_id": str(vendor_id),
                "override_global_tiers": policy.override_global_tiers,
                "special_agreement": policy.special_agreement.active,
            },
        )
        return vendor

    def adjust_credit_limit(self, vendor_id: uuid.UUID, new_limit_cents: int, reason: str) -> Vendor:
        """
        Change a vendor's credit limit; increases notify the vendor.

        Raises:
            InvalidCreditAdjustment: negative limit, short reason, or limit below outstanding credit
        """
        if new_limit_cents < 0:
            raise InvalidCreditAdjustment("Valid new credit limit is required")
        if not reason or len(reason.strip()) < MIN_REASON_LENGTH:
            raise InvalidCreditAdjustment(
                f"Reason for adjustment is required (minimum {MIN_REASON_LENGTH} characters)"
            )

        def adjust():
            with atomic(self.db):
                vendor = self._get_vendor(vendor_id)
                old_limit = vendor.credit_limit_cents

                if not self.vendors.set_credit_limit(vendor.id, new_limit_cents):
                    self.db.refresh(vendor)
                    raise InvalidCreditAdjustment(
                        f"New limit {new_limit_cents} is below outstanding credit {vendor.outstanding_credit_cents}"
                    )

                event = None
                if new_limit_cents > old_limit:
                    event = build_credit_limit_increase_event(str(vendor.id), old_limit, new_limit_cents, reason.strip())
                    row = self.notifications.create_once(event, None)
                    event.notification_id = str(row.id)
            return vendor, old_limit, event

        vendor, old_limit, event = call_with_retry(self.db, adjust, "adjust_credit_limit")
        if event is not None:
            self.outbox.append(event)

        logger.info(
            "Credit limit adjusted",
            extra={
                "vendor_id": str(vendor_id),
                "old_limit_cents": old_limit,
                "new_limit_cents": new_limit_cents,
                "reason": reason.strip(),
            },
        )
        return vendor

    def update_performance_tier(self, vendor_id: uuid.UUID, tier: str) -> Vendor:
        if tier not in PERFORMANCE_TIERS:
            raise InvalidCreditAdjustment(f"Invalid tier. Must be one of: {', '.join(PERFORMANCE_TIERS)}")

        with atomic(self.db):
            vendor = self._get_vendor(vendor_id)
            vendor.performance_tier = tier
        return vendor

    def _get_vendor(self, vendor_id: uuid.UUID) -> Vendor:
        vendor = self.vendors.get(vendor_id)
        if vendor is None:
            raise VendorNotFound(f"Vendor {vendor_id} not found")
        return vendor

"""Geofence Exclusivity Guard - at most one active vendor per service radius"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from credit_settlement.config import settings
from credit_settlement.domain.exceptions import ConfigurationError, VendorExists, VendorNotFound
from credit_settlement.domain.models import CreditPolicy
from credit_settlement.domain.tiers import validate_policy
from credit_settlement.infrastructure.database.models import Vendor
from credit_settlement.infrastructure.database.repositories import (
    GeofenceRepository,
    TierConfigRepository,
    VendorRepository,
)
from credit_settlement.infrastructure.database.session import atomic
from credit_settlement.infrastructure.observability.metrics import geofence_counter
from credit_settlement.services.retry import call_with_retry
from credit_settlement.utils.geo import latitude_bands

logger = logging.getLogger(__name__)


class GeofenceGuard:
    """
    Serializes the nearby-vendor check and the insert.

    Every check locks the latitude bands its disc touches before querying.
    Two points closer than the radius always share a band, so one of two
    competing registrations waits for the other and then sees its row.
    """

    def __init__(self, db: Session, radius_km: Optional[float] = None):
        self.db = db
        self.radius_km = radius_km if radius_km is not None else settings.exclusivity_radius_km
        self.vendors = VendorRepository(db)
        self.locks = GeofenceRepository(db)
        self.tiers = TierConfigRepository(db)

    def register_vendor(
        self,
        name: str,
        latitude: float,
        longitude: float,
        credit_limit_cents: int = 0,
        repayment_days: Optional[int] = None,
        phone: Optional[str] = None,
    ) -> Vendor:
        """
        Create a pending vendor unless another pending/approved vendor is in range.

        Raises:
            VendorExists: nearest conflicting vendor, with its distance
            ConfigurationError: repayment_days does not fit the global tiers
        """
        if credit_limit_cents < 0:
            raise ConfigurationError("Credit limit cannot be negative")

        def register() -> Vendor:
            with atomic(self.db):
                global_config = self.tiers.get()
                days = repayment_days if repayment_days is not None else global_config.repayment_days
                validate_policy(CreditPolicy(repayment_days=days), global_config)

                self.locks.lock_bands(latitude_bands(latitude, self.radius_km))
                self._ensure_exclusive(latitude, longitude)

                vendor = self.vendors.create(
                    name=name,
                    phone=phone,
                    latitude=latitude,
                    longitude=longitude,
                    credit_limit_cents=credit_limit_cents,
                    repayment_days=days,
                )
            return vendor

        vendor = call_with_retry(self.db, register, "register_vendor")
        geofence_counter.labels(outcome="registered").inc()
        return vendor

    def approve_vendor(self, vendor_id: uuid.UUID) -> Vendor:
        """Approve a pending vendor after re-checking that its area is still free"""

        def approve() -> Vendor:
            with atomic(self.db):
                vendor = self.vendors.get(vendor_id)
                if vendor is None:
                    raise VendorNotFound(f"Vendor {vendor_id} not found")
                if vendor.status == "approved":
                    return vendor

                self.locks.lock_bands(latitude_bands(vendor.latitude, self.radius_km))
                self._ensure_exclusive(vendor.latitude, vendor.longitude, exclude_id=vendor.id)

                vendor.status = "approved"
                vendor.approved_at = datetime.now(timezone.utc)
            return vendor

        vendor = call_with_retry(self.db, approve, "approve_vendor")
        geofence_counter.labels(outcome="approved").inc()
        return vendor

    def _ensure_exclusive(self, latitude: float, longitude: float, exclude_id: Optional[uuid.UUID] = None) -> None:
        nearby = self.vendors.find_within_radius(latitude, longitude, self.radius_km, exclude_id=exclude_id)
        if not nearby:
            return

        vendor, distance = nearby[0]
        geofence_counter.labels(outcome="vendor_exists").inc()
        logger.info(
            "Vendor exists within exclusivity radius",
            extra={"nearby_vendor_id": str(vendor.id), "distance_km": round(distance, 3)},
        )
        raise VendorExists(str(vendor.id), distance, self.radius_km)

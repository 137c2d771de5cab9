"""Vendor notification inbox"""

import uuid
from typing import List

from sqlalchemy.orm import Session

from credit_settlement.domain.exceptions import NotificationNotFound
from credit_settlement.infrastructure.database.models import VendorNotification
from credit_settlement.infrastructure.database.repositories import NotificationRepository
from credit_settlement.infrastructure.database.session import atomic


class NotificationService:
    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationRepository(db)

    def list_for_vendor(self, vendor_id: uuid.UUID, include_dismissed: bool = False, limit: int = 50) -> List[VendorNotification]:
        with atomic(self.db):
            return self.notifications.list_for_vendor(vendor_id, include_dismissed=include_dismissed, limit=limit)

    def mark_read(self, notification_id: uuid.UUID) -> VendorNotification:
        with atomic(self.db):
            notification = self._get(notification_id)
            notification.is_read = True
        return notification

    def dismiss(self, notification_id: uuid.UUID) -> VendorNotification:
        with atomic(self.db):
            notification = self._get(notification_id)
            notification.is_read = True
            notification.is_dismissed = True
        return notification

    def _get(self, notification_id: uuid.UUID) -> VendorNotification:
        notification = self.notifications.get(notification_id)
        if notification is None:
            raise NotificationNotFound(f"Notification {notification_id} not found")
        return notification

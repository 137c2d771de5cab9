"""Vendor notification inbox"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from credit_settlement.api.dependencies import get_request_id
from credit_settlement.api.v1.errors import parse_id, to_http_exception
from credit_settlement.api.v1.schemas import NotificationListResponse, NotificationResponse
from credit_settlement.domain.exceptions import DomainException
from credit_settlement.domain.models import NotificationEvent
from credit_settlement.infrastructure.database.models import VendorNotification
from credit_settlement.infrastructure.database.session import get_db
from credit_settlement.services.notifications import NotificationService

router = APIRouter()


def to_notification_response(notification: VendorNotification) -> NotificationResponse:
    return NotificationResponse(
        notification_id=str(notification.id),
        vendor_id=str(notification.vendor_id),
        purchase_id=str(notification.purchase_id) if notification.purchase_id else None,
        type=notification.type,
        title=notification.title,
        message=notification.message,
        priority=notification.priority,
        metadata=notification.details or {},
        is_read=notification.is_read,
        is_dismissed=notification.is_dismissed,
    )


def event_to_response(event: NotificationEvent) -> NotificationResponse:
    return NotificationResponse(
        notification_id=event.notification_id,
        vendor_id=event.vendor_id,
        purchase_id=event.purchase_id,
        type=event.type,
        title=event.title,
        message=event.message,
        priority=event.priority,
        metadata=event.metadata,
    )


@router.get("/vendors/{vendor_id}/notifications", response_model=NotificationListResponse)
def list_notifications(
    vendor_id: str,
    include_dismissed: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    vendor_uuid = parse_id(vendor_id, "vendor")
    notifications = NotificationService(db).list_for_vendor(
        vendor_uuid, include_dismissed=include_dismissed, limit=limit
    )
    return NotificationListResponse(
        vendor_id=vendor_id,
        notifications=[to_notification_response(n) for n in notifications],
    )


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(notification_id: str, request: Request, db: Session = Depends(get_db)):
    request_id = get_request_id(request)
    notification_uuid = parse_id(notification_id, "notification")

    try:
        return to_notification_response(NotificationService(db).mark_read(notification_uuid))
    except DomainException as e:
        raise to_http_exception(e, request_id)


@router.post("/notifications/{notification_id}/dismiss", response_model=NotificationResponse)
def dismiss_notification(notification_id: str, request: Request, db: Session = Depends(get_db)):
    request_id = get_request_id(request)
    notification_uuid = parse_id(notification_id, "notification")

    try:
        return to_notification_response(NotificationService(db).dismiss(notification_uuid))
    except DomainException as e:
        raise to_http_exception(e, request_id)

"""Dependency injection for FastAPI endpoints"""

from fastapi import Request
from credit_settlement.infrastructure.clients.notifications import NotificationDispatcher


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_notification_dispatcher() -> NotificationDispatcher:
    """Provide notification dispatcher client instance"""
    return NotificationDispatcher()

"""Notification dispatcher client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Iterable

import httpx

from credit_settlement.config import settings
from credit_settlement.domain.models import NotificationEvent
from credit_settlement.infrastructure.observability.metrics import (
    dispatch_failure_counter,
    dispatch_latency_histogram,
)

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Client for handing vendor notifications to the push/SMS dispatcher"""

    def __init__(self, dispatcher_url: str | None = None, timeout: float | None = None):
        self.dispatcher_url = dispatcher_url or settings.notification_dispatcher_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.dispatch_max_retries
        self.backoff_base = settings.dispatch_backoff_base

    @property
    def enabled(self) -> bool:
        return bool(self.dispatcher_url)

    async def send(self, event: NotificationEvent) -> bool:
        """
        Deliver one notification with retry logic.

        Retry strategy:
        - Exponential backoff: base, 2x base, 4x base, ...
        - Retries on HTTP errors and network failures
        - Tracks latency histogram and failure counter

        Delivery is fire-and-forget: a final failure is logged and reported as
        False, never raised, since the notification row is already committed.
        """
        if not self.enabled:
            return False

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with dispatch_latency_histogram.time():
                        response = await client.post(self.dispatcher_url, json=event.to_payload())
                        response.raise_for_status()
                        return True

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    dispatch_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logger.warning(
                            f"Notification dispatch failed after {attempt} attempts: {e}",
                            extra={
                                "vendor_id": event.vendor_id,
                                "notification_type": event.type,
                                "notification_id": event.notification_id,
                            },
                        )
                        return False

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
        return False

    async def send_all(self, events: Iterable[NotificationEvent]) -> int:
        """Send events one after another; returns how many were delivered"""
        delivered = 0
        for event in events:
            if await self.send(event):
                delivered += 1
        return delivered

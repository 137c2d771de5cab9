"""Periodic background sweep of credit purchase lifecycles"""

import asyncio
import logging
from typing import List, Optional

from credit_settlement.config import settings
from credit_settlement.domain.models import NotificationEvent
from credit_settlement.infrastructure.clients.notifications import NotificationDispatcher
from credit_settlement.infrastructure.database.session import SessionLocal
from credit_settlement.services.lifecycle_tracker import LifecycleTracker

logger = logging.getLogger(__name__)


def run_sweep(session_factory=SessionLocal) -> List[NotificationEvent]:
    """One tracker pass in its own session"""
    db = session_factory()
    try:
        return LifecycleTracker(db).tick()
    finally:
        db.close()


async def lifecycle_sweep_worker(
    dispatcher: Optional[NotificationDispatcher] = None,
    interval_seconds: Optional[int] = None,
    session_factory=SessionLocal,
) -> None:
    dispatcher = dispatcher or NotificationDispatcher()
    interval = interval_seconds or settings.lifecycle_sweep_interval_seconds

    while True:
        try:
            # Blocking DB work stays off the event loop
            events = await asyncio.to_thread(run_sweep, session_factory)
            if events:
                await dispatcher.send_all(events)
        except Exception:
            logger.exception("LIFECYCLE_SWEEP_ERROR")

        await asyncio.sleep(interval)

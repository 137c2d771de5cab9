"""Bounded retry for units of work that lose a write conflict"""

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from credit_settlement.config import settings
from credit_settlement.domain.exceptions import StaleWrite
from credit_settlement.infrastructure.observability.metrics import stale_write_retry_counter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    db: Session,
    unit: Callable[[], T],
    operation: str,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> T:
    """
    Run `unit` and re-run it from scratch while it raises StaleWrite.

    `unit` must open and commit its own transaction so every attempt reads
    fresh state. After `max_retries` retries the last StaleWrite propagates.
    """
    max_retries = settings.stale_write_max_retries if max_retries is None else max_retries
    backoff_base = settings.stale_write_backoff_base if backoff_base is None else backoff_base

    attempt = 0
    while True:
        try:
            return unit()
        except StaleWrite as e:
            db.rollback()
            attempt += 1
            if attempt > max_retries:
                logger.error(
                    f"Giving up after {max_retries} retries: {e}",
                    extra={"operation": operation},
                )
                raise

            stale_write_retry_counter.labels(operation=operation).inc()
            backoff = backoff_base * (2 ** (attempt - 1))
            logger.warning(
                f"Write conflict, retrying in {backoff:.2f}s",
                extra={"operation": operation, "attempt": attempt},
            )
            time.sleep(backoff)

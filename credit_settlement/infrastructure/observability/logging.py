"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from credit_settlement.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_credit_decision(
    request_id: str,
    vendor_id: str,
    amount_cents: int,
    outcome: str,
    available_cents: Optional[int] = None,
    purchase_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Log structured credit purchase outcome for analysis"""
    logging.info(
        "Credit purchase evaluated",
        extra={
            "request_id": request_id,
            "vendor_id": vendor_id,
            "step": "credit_decision",
            "outcome": outcome,
            "amount_cents": amount_cents,
            "available_cents": available_cents,
            "purchase_id": purchase_id,
            "duration_ms": duration_ms,
        },
    )


def log_vendor_registration(
    request_id: str,
    outcome: str,
    latitude: float,
    longitude: float,
    vendor_id: Optional[str] = None,
    nearby_vendor_id: Optional[str] = None,
    distance_km: Optional[float] = None,
) -> None:
    """Log geofence check outcome for a registration or approval"""
    logging.info(
        "Vendor geofence check completed",
        extra={
            "request_id": request_id,
            "step": "geofence_check",
            "outcome": outcome,
            "vendor_id": vendor_id,
            "latitude": latitude,
            "longitude": longitude,
            "nearby_vendor_id": nearby_vendor_id,
            "distance_km": distance_km,
        },
    )


def log_repayment(
    request_id: str,
    purchase_id: str,
    principal_cents: int,
    amount_paid_cents: int,
    tier_type: str,
    fully_repaid: bool,
) -> None:
    logging.info(
        "Repayment recorded",
        extra={
            "request_id": request_id,
            "purchase_id": purchase_id,
            "step": "repayment",
            "principal_cents": principal_cents,
            "amount_paid_cents": amount_paid_cents,
            "tier_type": tier_type,
            "fully_repaid": fully_repaid,
        },
    )

"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "koperasi-gateway"


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


def log_schedule_status(
    request_id: str,
    account_ref: str,
    slot_count: int,
    next_slot: Optional[int],
    suggested_amount_minor: int,
    duration_ms: float,
) -> None:
    """Log structured schedule projection outcome"""
    logging.info(
        "Schedule status computed",
        extra={
            "request_id": request_id,
            "account_ref": account_ref,
            "step": "schedule_status",
            "slot_count": slot_count,
            "next_slot": next_slot,
            "suggested_amount_minor": suggested_amount_minor,
            "duration_ms": duration_ms,
        },
    )


def log_reconciliation(
    request_id: str,
    session_id: str,
    account_ref: str,
    step: str,
    difference_minor: Optional[int] = None,
) -> None:
    """Log one step of a reconciliation session lifecycle"""
    logging.info(
        f"Reconciliation {step}",
        extra={
            "request_id": request_id,
            "reconciliation_id": session_id,
            "account_ref": account_ref,
            "step": f"reconciliation_{step}",
            "difference_minor": difference_minor,
        },
    )

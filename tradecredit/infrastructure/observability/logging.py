"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from tradecredit.config import settings
from tradecredit.utils.date_utils import utc_now


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utc_now().isoformat()
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


def log_transition(
    application_id: str,
    importer_id: str,
    actor_role: str,
    transition: str,
    version: int,
) -> None:
    """Log a committed approval workflow transition"""
    logging.getLogger("tradecredit.workflow").info(
        "Transition committed",
        extra={
            "application_id": application_id,
            "importer_id": importer_id,
            "actor_role": actor_role,
            "step": transition,
            "version": version,
        },
    )


def log_drawdown(
    importer_id: str,
    import_id: str | None,
    requested_cents: int,
    available_cents: int,
    outcome: str,
) -> None:
    """Log the outcome of a drawdown attempt for credit analysis"""
    logging.getLogger("tradecredit.ledger").info(
        "Drawdown %s",
        outcome,
        extra={
            "importer_id": importer_id,
            "import_id": import_id,
            "step": "drawdown",
            "drawdown_outcome": outcome,
            "requested_cents": requested_cents,
            "available_cents": available_cents,
        },
    )

"""Notification webhook client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Any, Dict, List, Tuple

import httpx

from tradecredit.config import settings
from tradecredit.domain.models import Role, WorkflowEvent
from tradecredit.domain.money import format_cents
from tradecredit.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

logger = logging.getLogger(__name__)

IMPORTER = Role.IMPORTER.value
ADMINISTRATOR = Role.ADMINISTRATOR.value
FINANCIAL_INSTITUTION = Role.FINANCIAL_INSTITUTION.value

# event_type -> (audience, title, message template)
NOTIFICATION_TEMPLATES: Dict[str, Tuple[List[str], str, str]] = {
    "application.submitted": (
        [ADMINISTRATOR],
        "New credit application",
        "A credit application of {requested} is awaiting pre-analysis.",
    ),
    "pre_analysis.pre_approved": (
        [IMPORTER, FINANCIAL_INSTITUTION],
        "Credit pre-approved",
        "The credit application of {requested} was pre-approved and sent for financial analysis.",
    ),
    "pre_analysis.needs_documents": (
        [IMPORTER],
        "Documents required",
        "Additional documents are required to continue the analysis of your credit application.",
    ),
    "pre_analysis.needs_clarification": (
        [IMPORTER],
        "Clarification required",
        "Please provide clarification so the analysis of your credit application can continue.",
    ),
    "financial.approved": (
        [IMPORTER, ADMINISTRATOR],
        "Credit approved",
        "The financial institution approved a credit limit of {limit}.",
    ),
    "final.finalized": (
        [IMPORTER],
        "Credit available",
        "Your credit was finalized and is available for use. Approved limit: {limit}.",
    ),
    "application.withdrawn": (
        [ADMINISTRATOR],
        "Application withdrawn",
        "The importer withdrew a credit application of {requested}.",
    ),
    "import.drawdown_confirmed": (
        [IMPORTER, ADMINISTRATOR],
        "Drawdown confirmed",
        "An import of {value} was confirmed against your credit. Available credit: {available}.",
    ),
    "import.cancelled": (
        [IMPORTER, ADMINISTRATOR],
        "Import cancelled",
        "An import of {value} was cancelled and its credit released.",
    ),
    "obligation.overdue": (
        [IMPORTER],
        "Payment overdue",
        "URGENT: a payment of {amount} due on {due_date} is overdue.",
    ),
}

REJECTED_TEMPLATE = (
    [IMPORTER],
    "Application rejected",
    "Your credit application was rejected. Contact us for more information.",
)


def build_notification(event: WorkflowEvent) -> Dict[str, Any] | None:
    """
    Render a workflow event into a notification payload.

    Returns None for events nobody is notified about (e.g. import status updates).
    """
    if event.event_type.endswith(".rejected"):
        audience, title, template = REJECTED_TEMPLATE
    elif event.event_type in NOTIFICATION_TEMPLATES:
        audience, title, template = NOTIFICATION_TEMPLATES[event.event_type]
    else:
        return None

    amounts = {
        key: format_cents(event.data[f"{key}_cents"], settings.currency)
        for key in ("requested", "limit", "value", "available", "amount")
        if f"{key}_cents" in event.data
    }
    return {
        "event": event.event_type,
        "importer_id": event.importer_id,
        "application_id": str(event.application_id) if event.application_id else None,
        "import_id": str(event.import_id) if event.import_id else None,
        "audience": audience,
        "title": title,
        "message": template.format(**{**event.data, **amounts}),
    }


class NotificationClient:
    """Client for sending workflow notifications to the delivery service"""

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds

    async def send_event(self, event: WorkflowEvent) -> None:
        """
        Deliver a workflow event, fire-and-forget.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures
        - Final failure is logged; a transition is never undone by delivery failure
        """
        payload = build_notification(event)
        if payload is None:
            return

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logger.error(
                            f"Notification delivery failed after {attempt} attempts: {e}",
                            extra={"event": event.event_type, "importer_id": event.importer_id},
                        )
                        return

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

"""Unit tests for notification rendering and delivery retries"""

import asyncio
import uuid
from unittest.mock import AsyncMock, patch

import httpx

from tradecredit.domain.models import WorkflowEvent
from tradecredit.infrastructure.clients.notifications import NotificationClient, build_notification

WEBHOOK_URL = "http://notifications.test/hook"
APPLICATION_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", WEBHOOK_URL))


def _client() -> NotificationClient:
    client = NotificationClient(WEBHOOK_URL)
    client.max_retries = 3
    client.backoff_base = 0
    return client


def test_build_notification_formats_amounts():
    event = WorkflowEvent(
        event_type="final.finalized",
        importer_id="importer-001",
        application_id=APPLICATION_ID,
        data={"limit_cents": 5000000},
    )

    payload = build_notification(event)

    assert payload["event"] == "final.finalized"
    assert payload["audience"] == ["importer"]
    assert payload["application_id"] == str(APPLICATION_ID)
    assert payload["import_id"] is None
    assert "USD 50,000.00" in payload["message"]


def test_build_notification_any_rejection_phase():
    for event_type in ("pre_analysis.rejected", "financial_review.rejected", "final_review.rejected"):
        payload = build_notification(WorkflowEvent(event_type=event_type, importer_id="importer-001"))
        assert payload["title"] == "Application rejected"


def test_build_notification_drawdown_mentions_available_credit():
    event = WorkflowEvent(
        event_type="import.drawdown_confirmed",
        importer_id="importer-001",
        import_id=uuid.uuid4(),
        data={"value_cents": 2000000, "available_cents": 3000000},
    )

    payload = build_notification(event)

    assert "USD 20,000.00" in payload["message"]
    assert "USD 30,000.00" in payload["message"]


def test_build_notification_silent_event():
    event = WorkflowEvent(event_type="import.status_updated", importer_id="importer-001")
    assert build_notification(event) is None


@patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock)
def test_send_event_retries_then_succeeds(mock_post: AsyncMock):
    mock_post.side_effect = [httpx.ConnectError("connection refused"), _response(503), _response(200)]
    event = WorkflowEvent(event_type="application.submitted", importer_id="importer-001", data={"requested_cents": 100})

    asyncio.run(_client().send_event(event))

    assert mock_post.call_count == 3
    assert mock_post.call_args.kwargs["json"]["event"] == "application.submitted"


@patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock)
def test_send_event_gives_up_without_raising(mock_post: AsyncMock):
    mock_post.side_effect = httpx.ConnectError("connection refused")
    event = WorkflowEvent(event_type="application.withdrawn", importer_id="importer-001", data={"requested_cents": 100})

    asyncio.run(_client().send_event(event))

    assert mock_post.call_count == 3


@patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock)
def test_send_event_skips_silent_events(mock_post: AsyncMock):
    event = WorkflowEvent(event_type="import.status_updated", importer_id="importer-001")

    asyncio.run(_client().send_event(event))

    mock_post.assert_not_called()


def test_build_notification_overdue_payment():
    event = WorkflowEvent(
        event_type="obligation.overdue",
        importer_id="importer-001",
        import_id=uuid.uuid4(),
        data={"amount_cents": 466600, "due_date": "2025-04-02", "sequence_number": 1},
    )

    payload = build_notification(event)

    assert payload["audience"] == ["importer"]
    assert payload["title"] == "Payment overdue"
    assert "USD 4,666.00" in payload["message"]
    assert "2025-04-02" in payload["message"]

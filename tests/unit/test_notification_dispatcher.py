"""Unit tests for the notification dispatcher client"""

import asyncio
import httpx
from unittest.mock import AsyncMock, patch
from credit_settlement.domain.models import NotificationEvent
from credit_settlement.infrastructure.clients.notifications import NotificationDispatcher

URL = "http://dispatcher.local/notify"


def make_event() -> NotificationEvent:
    return NotificationEvent(
        vendor_id="v1",
        type="overdue_alert",
        title="Overdue Payment",
        message="Your credit payment is 3 day(s) overdue.",
        priority="urgent",
        metadata={"purchaseId": "p1"},
        purchase_id="p1",
    )


def ok_response() -> httpx.Response:
    return httpx.Response(200, request=httpx.Request("POST", URL))


@patch("credit_settlement.infrastructure.clients.notifications.asyncio.sleep", new_callable=AsyncMock)
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
def test_send_posts_payload(mock_post: AsyncMock, mock_sleep: AsyncMock):
    mock_post.return_value = ok_response()

    delivered = asyncio.run(NotificationDispatcher(dispatcher_url=URL).send(make_event()))

    assert delivered is True
    args, kwargs = mock_post.call_args
    assert args[0] == URL
    assert kwargs["json"] == {
        "vendorId": "v1",
        "type": "overdue_alert",
        "title": "Overdue Payment",
        "message": "Your credit payment is 3 day(s) overdue.",
        "metadata": {"purchaseId": "p1"},
        "priority": "urgent",
    }
    mock_sleep.assert_not_called()


@patch("credit_settlement.infrastructure.clients.notifications.asyncio.sleep", new_callable=AsyncMock)
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
def test_send_retries_then_succeeds(mock_post: AsyncMock, mock_sleep: AsyncMock):
    mock_post.side_effect = [httpx.ConnectError("refused"), ok_response()]

    delivered = asyncio.run(NotificationDispatcher(dispatcher_url=URL).send(make_event()))

    assert delivered is True
    assert mock_post.call_count == 2
    assert mock_sleep.call_count == 1


@patch("credit_settlement.infrastructure.clients.notifications.asyncio.sleep", new_callable=AsyncMock)
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
def test_send_failure_is_not_raised(mock_post: AsyncMock, mock_sleep: AsyncMock):
    """Test final failure returns False instead of raising"""
    mock_post.side_effect = httpx.ConnectError("refused")
    dispatcher = NotificationDispatcher(dispatcher_url=URL)

    delivered = asyncio.run(dispatcher.send(make_event()))

    assert delivered is False
    assert mock_post.call_count == dispatcher.max_retries


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
def test_disabled_without_url(mock_post: AsyncMock):
    dispatcher = NotificationDispatcher()

    assert dispatcher.enabled is False
    assert asyncio.run(dispatcher.send_all([make_event(), make_event()])) == 0
    mock_post.assert_not_called()

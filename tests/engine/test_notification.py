# tests/engine/test_notification.py

import json
import httpx
import pytest
from hostnode.core.config import settings
from hostnode.engine.notification.base import NotificationError
from hostnode.engine.notification.main import LogNotifier, WebhookNotifier

WEBHOOK_URL = "https://mail.example.com/hooks/notify"

def webhook(handler) -> WebhookNotifier:
    return WebhookNotifier(url=WEBHOOK_URL, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

async def test_webhook_posts_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(202)

    await webhook(handler).notify(["owner@example.com"], "Subject", "Body")

    assert received == [(
        "POST", WEBHOOK_URL, {"recipients": ["owner@example.com"], "subject": "Subject", "body": "Body"}
    )]

async def test_webhook_error_status_raises():
    with pytest.raises(NotificationError, match="500"):
        await webhook(lambda request: httpx.Response(500)).notify(["a@example.com"], "s", "b")

async def test_webhook_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NotificationError):
        await webhook(handler).notify(["a@example.com"], "s", "b")

def test_webhook_requires_url(monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", None)
    with pytest.raises(ValueError):
        WebhookNotifier()

async def test_log_notifier_never_fails():
    await LogNotifier().notify(["a@example.com"], "s", "b")

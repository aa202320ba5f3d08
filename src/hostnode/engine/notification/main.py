# src/hostnode/engine/notification/main.py

import logging
from typing import Dict, List, Type
import httpx
from hostnode.core.config import settings
from .base import BaseNotifier, NotificationError

logger = logging.getLogger(__name__)

class LogNotifier(BaseNotifier):
    """只写日志，用于开发环境以及未配置通知通道的节点。"""
    name = "log"

    async def notify(self, recipients: List[str], subject: str, body: str) -> None:
        logger.info(f"Notification to {recipients}: {subject}\n{body}")

class WebhookNotifier(BaseNotifier):
    """把通知 POST 到一个外部 Webhook (例如邮件网关)。"""
    name = "webhook"

    def __init__(self, url: str = None, http_client: httpx.AsyncClient = None):
        self.url = url or (str(settings.NOTIFICATION_WEBHOOK_URL) if settings.NOTIFICATION_WEBHOOK_URL else None)
        if not self.url:
            raise ValueError("NOTIFICATION_WEBHOOK_URL must be set to use the webhook notifier.")
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    async def notify(self, recipients: List[str], subject: str, body: str) -> None:
        try:
            response = await self.http_client.post(
                self.url,
                json={"recipients": recipients, "subject": subject, "body": body}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(f"Webhook returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise NotificationError(f"Webhook request failed: {e}") from e

_NOTIFIERS: Dict[str, Type[BaseNotifier]] = {
    LogNotifier.name: LogNotifier,
    WebhookNotifier.name: WebhookNotifier,
}
_notifier_instance: BaseNotifier = None

def get_notifier() -> BaseNotifier:
    global _notifier_instance
    if _notifier_instance is None:
        _notifier_instance = _NOTIFIERS[settings.NOTIFIER]()
    return _notifier_instance

# src/hostnode/engine/notification/base.py

from abc import ABC, abstractmethod
from typing import List

class NotificationError(Exception):
    pass

class BaseNotifier(ABC):
    """项目管理员通知的出口 (邮件网关、Webhook 等)。"""
    name: str = "base"

    @abstractmethod
    async def notify(self, recipients: List[str], subject: str, body: str) -> None:
        raise NotImplementedError

# src/hostnode/engine/advertisement/main.py

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict
import httpx
from hostnode.core.config import settings

logger = logging.getLogger(__name__)

class AdvertisementError(Exception):
    pass

def build_advertisement(gpu_total: int = 0, gpu_available: int = 0) -> Dict[str, Any]:
    """节点能力与定价的广告内容。"""
    return {
        "protocol": "mandala-node-v1",
        "url": settings.NODE_SERVER_BASEURL,
        "identityKey": settings.NODE_IDENTITY_KEY,
        "capabilities": {
            "gpu": settings.GPU_ENABLED,
            "gpuType": settings.GPU_TYPE,
            "gpuTotal": gpu_total,
            "gpuAvailable": gpu_available,
            "tee": settings.TEE_ENABLED,
            "teeTechnology": settings.TEE_TECHNOLOGY,
            "supportedAgentTypes": settings.SUPPORTED_AGENT_TYPES,
            "supportedRuntimes": settings.SUPPORTED_RUNTIMES,
        },
        "pricing": {
            "cpu_rate_per_core_5min": settings.CPU_RATE_PER_CORE_5MIN,
            "mem_rate_per_gb_5min": settings.MEM_RATE_PER_GB_5MIN,
            "disk_rate_per_gb_5min": settings.DISK_RATE_PER_GB_5MIN,
            "net_rate_per_gb_5min": settings.NET_RATE_PER_GB_5MIN,
            "gpu_rate_per_unit_5min": settings.GPU_RATE_PER_UNIT_5MIN,
        },
        "publishedAt": datetime.now(timezone.utc).isoformat(),
    }

class BaseAdvertisementPublisher(ABC):
    @abstractmethod
    async def publish(self, advertisement: Dict[str, Any]) -> None:
        raise NotImplementedError

class HttpAdvertisementPublisher(BaseAdvertisementPublisher):
    """把广告 PUT 到注册中心。失败抛出 AdvertisementError，由任务层决定重试。"""

    def __init__(self, url: str = None, http_client: httpx.AsyncClient = None):
        self.url = url or (str(settings.ADVERTISEMENT_URL) if settings.ADVERTISEMENT_URL else None)
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    async def publish(self, advertisement: Dict[str, Any]) -> None:
        if not self.url:
            logger.info("ADVERTISEMENT_URL is not configured; skipping advertisement publish.")
            return
        try:
            response = await self.http_client.put(self.url, json=advertisement)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AdvertisementError(f"Registry returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise AdvertisementError(f"Registry request failed: {e}") from e
        logger.info(f"Published node advertisement to {self.url}")

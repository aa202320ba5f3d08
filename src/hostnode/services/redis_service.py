# src/hostnode/services/redis_service.py

import logging
from contextlib import asynccontextmanager
import redis.asyncio as aioredis
from hostnode.core.config import settings
from hostnode.services.exceptions import TenantLockTimeout

logger = logging.getLogger(__name__)

class RedisService:
    """
    封装 aioredis 客户端；目前只承担租户级分布式锁。
    """
    def __init__(self, client: aioredis.Redis = None):
        self.client = client if client else aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )

    async def close(self):
        await self.client.aclose()

    @asynccontextmanager
    async def tenant_lock(self, project_uuid: str):
        """
        [Concurrency Guard] 每个租户一把分布式锁。
        集群资源的 apply、Ingress 闸门与租户销毁都必须在此锁内串行执行。
        """
        lock_key = f"lock:tenant:{project_uuid}"
        lock = self.client.lock(
            lock_key,
            timeout=settings.TENANT_LOCK_TIMEOUT_SECONDS,
            blocking_timeout=settings.TENANT_LOCK_WAIT_SECONDS
        )
        acquired = await lock.acquire()
        if not acquired:
            raise TenantLockTimeout(f"Timed out waiting for the release lock of project {project_uuid}.")
        logger.debug(f"Acquired tenant lock '{lock_key}'")
        try:
            yield
        finally:
            await lock.release()

# src/hostnode/worker/tasks/advertisement.py

import logging
from arq import Retry
from hostnode.core.config import settings
from hostnode.engine.advertisement.main import AdvertisementError
from hostnode.services.node.node_service import NodeService
from hostnode.worker.context import build_context_for_worker

logger = logging.getLogger(__name__)

async def refresh_advertisement_task(ctx: dict):
    """发布节点广告；注册中心暂时不可用时按指数退避重试。"""
    db_session_factory = ctx['db_session_factory']
    async with db_session_factory() as session:
        app_context = build_context_for_worker(ctx, session)
        try:
            await NodeService(app_context).advertise(ctx['publisher'])
        except AdvertisementError as e:
            job_try = ctx.get('job_try', 1)
            if job_try >= settings.ADVERTISEMENT_MAX_TRIES:
                logger.error(f"Giving up on advertisement refresh after {job_try} tries: {e}")
                return False
            logger.warning(f"Advertisement refresh failed (try {job_try}): {e}; retrying.")
            raise Retry(defer=2 ** job_try * 5)
    return True

async def periodic_advertisement_task(ctx: dict):
    if not settings.REGISTRY_ENABLED:
        return False
    return await refresh_advertisement_task(ctx)

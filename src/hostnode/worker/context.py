# src/hostnode/worker/context.py

import logging
from arq import Retry
from sqlalchemy.ext.asyncio import AsyncSession
from hostnode.core.config import settings
from hostnode.core.context import AppContext

logger = logging.getLogger(__name__)

def build_context_for_worker(ctx: dict, db_session: AsyncSession) -> AppContext:
    """
    为后台任务组装 AppContext。
    任务没有调用方身份，auth 始终为空；协作者来自 worker 启动时创建的 ctx。
    """
    return AppContext(
        db=db_session,
        auth=None,
        redis_service=ctx['redis_service'],
        arq_pool=ctx['arq_pool'],
        cluster=ctx['cluster'],
        notifier=ctx['notifier'],
    )

def retry_handoff(ctx: dict, what: str) -> None:
    """任务在入队它的请求事务提交前就被取到了：延迟重试，超过次数则放弃。"""
    job_try = ctx.get('job_try', 1)
    if job_try >= settings.JOB_HANDOFF_MAX_TRIES:
        logger.error(f"Giving up on {what} after {job_try} tries; the enqueueing transaction never committed.")
        return
    logger.info(f"{what} is not visible yet (try {job_try}); retrying.")
    raise Retry(defer=settings.JOB_HANDOFF_RETRY_SECONDS * job_try)

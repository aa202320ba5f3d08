# src/hostnode/worker/main.py

import logging
from arq import create_pool
from arq.connections import RedisSettings
from hostnode.db.session import SessionLocal, engine
from hostnode.services.redis_service import RedisService
from hostnode.engine.cluster.factory import get_cluster_client
from hostnode.engine.builder.factory import get_image_builder
from hostnode.engine.notification.main import get_notifier
from hostnode.engine.metering.main import ClusterUsageMeter
from hostnode.engine.advertisement.main import HttpAdvertisementPublisher
from hostnode.core.config import settings

logger = logging.getLogger(__name__)

TASK_FUNCTIONS = []
CRON_JOBS = []

def get_redis_settings():
    """统一的 Redis 配置获取函数"""
    return RedisSettings(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD,
        database=settings.REDIS_DB
    )

async def startup(ctx):
    """Worker 进程启动时，创建依赖工厂与协作者。"""
    ctx['db_session_factory'] = SessionLocal
    ctx['redis_service'] = RedisService()
    ctx['arq_pool'] = await create_pool(get_redis_settings())
    cluster = get_cluster_client()
    ctx['cluster'] = cluster
    ctx['builder'] = get_image_builder()
    ctx['notifier'] = get_notifier()
    ctx['meter'] = ClusterUsageMeter(cluster)
    ctx['publisher'] = HttpAdvertisementPublisher()
    logger.info("ARQ worker started up; database session factory and cluster clients are ready.")

async def shutdown(ctx):
    """Worker 进程关闭时，清理资源。"""
    await ctx['redis_service'].close()
    await ctx['arq_pool'].aclose()
    await engine.dispose()
    logger.info("ARQ worker shut down, database engine disposed.")

class WorkerSettings:
    """ARQ Worker 的主配置。"""
    functions = TASK_FUNCTIONS
    cron_jobs = CRON_JOBS
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    # 构建 + 推送 + 等待上线的总时长上限
    job_timeout = settings.BUILD_TIMEOUT_SECONDS + settings.PUSH_TIMEOUT_SECONDS + settings.ROLLOUT_TIMEOUT_SECONDS
    # 各任务自行判断是否放弃重试，arq 的上限不能低于它们
    max_tries = max(settings.ADVERTISEMENT_MAX_TRIES, settings.JOB_HANDOFF_MAX_TRIES)

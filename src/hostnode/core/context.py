# src/hostnode/core/context.py

from pydantic import BaseModel, ConfigDict
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from arq.connections import ArqRedis

from hostnode.api.dependencies.authentication import AuthContext
from hostnode.services.redis_service import RedisService
from hostnode.engine.cluster.base import BaseClusterClient
from hostnode.engine.notification.base import BaseNotifier

class AppContext(BaseModel):
    """
    Defines the complete, typed context for service layer operations.
    Built per request by the API dependencies and per job by the worker.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # 核心数据库会话
    db: AsyncSession

    # 对于需要认证的路由，它将是一个 AuthContext 实例；对于公共路由或 worker 任务，它将是 None。
    auth: Optional[AuthContext] = None

    # 全局应用级服务/引擎
    redis_service: Optional[RedisService] = None
    arq_pool: Optional[ArqRedis] = None
    cluster: Optional[BaseClusterClient] = None
    notifier: Optional[BaseNotifier] = None

    @property
    def actor(self):
        if not self.auth or not self.auth.user:
            raise PermissionError("An authenticated user (actor) is required for this operation.")
        return self.auth.user

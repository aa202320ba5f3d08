# src/hostnode/services/auditing/audit_service.py

import logging
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from hostnode.models import Project, Deployment, ProjectLog, LogLevel
from hostnode.dao.auditing.project_log_dao import ProjectLogDao

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

class AuditService:
    """
    项目审计日志的两条日志流:
    - 项目级 (deployment_id 为空): 管理操作、计费、域名等
    - 部署级: 一次部署流水线的逐步进展
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.log_dao = ProjectLogDao(db)

    async def log_project(self, project: Project, message: str, level: LogLevel = LogLevel.INFO) -> ProjectLog:
        logger.log(_LOG_LEVELS[level], f"[project {project.uuid}] {message}")
        return await self.log_dao.add(ProjectLog(project_id=project.id, level=level, message=message))

    async def log_deployment(
        self,
        deployment: Deployment,
        message: str,
        level: LogLevel = LogLevel.INFO
    ) -> ProjectLog:
        logger.log(_LOG_LEVELS[level], f"[deployment {deployment.uuid}] {message}")
        return await self.log_dao.add(
            ProjectLog(project_id=deployment.project_id, deployment_id=deployment.id, level=level, message=message)
        )

    async def log_both(
        self,
        project: Project,
        deployment: Deployment,
        message: str,
        level: LogLevel = LogLevel.INFO
    ) -> None:
        await self.log_project(project, message, level)
        await self.log_deployment(deployment, message, level)

    async def project_feed(self, project: Project, limit: int = 200) -> List[ProjectLog]:
        return await self.log_dao.list_project_feed(project.id, limit=limit)

    async def deployment_feed(self, deployment: Deployment, limit: int = 500) -> List[ProjectLog]:
        return await self.log_dao.list_deployment_feed(deployment.id, limit=limit)

def join_feed(entries: List[ProjectLog], newest_first: bool = False) -> str:
    ordered = list(reversed(entries)) if newest_first else entries
    return "\n".join(f"[{e.timestamp.isoformat() if e.timestamp else ''}] {e.message}" for e in ordered)

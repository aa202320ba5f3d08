# src/hostnode/dao/auditing/project_log_dao.py

from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from hostnode.dao.base_dao import BaseDao
from hostnode.models import ProjectLog

class ProjectLogDao(BaseDao[ProjectLog]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(ProjectLog, db_session)

    async def list_project_feed(self, project_id: int, limit: int = 200) -> List[ProjectLog]:
        # deployment_id 为空的行 = 项目级日志流
        return await self.get_list(
            where=[ProjectLog.project_id == project_id, ProjectLog.deployment_id.is_(None)],
            order=[ProjectLog.timestamp.desc(), ProjectLog.id.desc()],
            page=1,
            limit=limit,
        )

    async def list_deployment_feed(self, deployment_id: int, limit: int = 500) -> List[ProjectLog]:
        return await self.get_list(
            where={"deployment_id": deployment_id},
            order=[ProjectLog.timestamp.asc(), ProjectLog.id.asc()],
            page=1,
            limit=limit,
        )

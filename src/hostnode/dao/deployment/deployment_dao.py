# src/hostnode/dao/deployment/deployment_dao.py

from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from hostnode.dao.base_dao import BaseDao
from hostnode.models import Deployment, DeploymentStatus, Release

class DeploymentDao(BaseDao[Deployment]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(Deployment, db_session)

    async def get_by_uuid(self, uuid: str, withs: Optional[list] = None) -> Optional[Deployment]:
        return await self.get_one(where={"uuid": uuid}, withs=withs)

    async def list_by_project(self, project_id: int, page: int = 0, limit: int = 0) -> List[Deployment]:
        return await self.get_list(
            where={"project_id": project_id},
            order=[Deployment.created_at.desc(), Deployment.id.desc()],
            page=page,
            limit=limit
        )

    async def get_last_rolled_out(self, project_id: int) -> Optional[Deployment]:
        """最后一次成功上线的部署，其 spec_snapshot 用于仅恢复 Ingress。"""
        return await self.get_one(
            where={"project_id": project_id, "status": DeploymentStatus.ROLLED_OUT},
            order=[Deployment.id.desc()]
        )

class ReleaseDao(BaseDao[Release]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(Release, db_session)

    async def get_by_project_id(self, project_id: int) -> Optional[Release]:
        return await self.get_one(where={"project_id": project_id})

# src/hostnode/dao/project/project_dao.py

from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from hostnode.dao.base_dao import BaseDao
from hostnode.models import Project, ProjectAdmin, ProjectStatus

class ProjectDao(BaseDao[Project]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(Project, db_session)

    async def get_by_uuid(self, uuid: str, withs: Optional[list] = None) -> Optional[Project]:
        return await self.get_one(where={"uuid": uuid}, withs=withs)

    async def get_for_update(self, project_id: int) -> Optional[Project]:
        """
        以行锁读取项目，用于余额的读-改-写。
        调用方必须处于事务之中。
        """
        return await self.db_session.get(Project, project_id, with_for_update=True, populate_existing=True)

    async def list_by_admin(self, identity_key: str) -> List[Project]:
        stmt = (
            select(Project)
            .join(ProjectAdmin, ProjectAdmin.project_id == Project.id)
            .where(ProjectAdmin.identity_key == identity_key)
            .order_by(Project.created_at.desc())
        )
        result = await self.db_session.execute(stmt)
        return list(result.scalars().unique().all())

    async def list_active(self) -> List[Project]:
        return await self.get_list(where={"status": ProjectStatus.ACTIVE}, order=[Project.id])

class ProjectAdminDao(BaseDao[ProjectAdmin]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(ProjectAdmin, db_session)

    async def get_membership(self, project_id: int, identity_key: str) -> Optional[ProjectAdmin]:
        return await self.get_one(where={"project_id": project_id, "identity_key": identity_key})

    async def list_by_project(self, project_id: int) -> List[ProjectAdmin]:
        return await self.get_list(where={"project_id": project_id}, order=[ProjectAdmin.added_at], time_key="added_at")

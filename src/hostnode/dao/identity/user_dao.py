# src/hostnode/dao/identity/user_dao.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from hostnode.dao.base_dao import BaseDao
from hostnode.models import User

class UserDao(BaseDao[User]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(User, db_session)

    async def get_by_identity_key(self, identity_key: str) -> Optional[User]:
        return await self.get_one(where={"identity_key": identity_key})

    async def get_or_create(self, identity_key: str) -> User:
        user = await self.get_by_identity_key(identity_key)
        if user is None:
            user = await self.add(User(identity_key=identity_key))
        return user

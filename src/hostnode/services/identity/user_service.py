# src/hostnode/services/identity/user_service.py

from hostnode.core.context import AppContext
from hostnode.dao.identity.user_dao import UserDao
from hostnode.schemas.identity.user_schemas import UserRegister, UserRead

class UserService:
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.user_dao = UserDao(context.db)

    async def register(self, identity_key: str, data: UserRegister) -> UserRead:
        """注册是幂等的：已存在的身份只更新邮箱。"""
        user = await self.user_dao.get_or_create(identity_key)
        if data.email is not None:
            user.email = str(data.email)
            await self.db.flush()
        return UserRead.model_validate(user)

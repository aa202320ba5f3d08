# hostnode/api/dependencies/authentication.py

import logging
from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict

from hostnode.models.identity import User
from hostnode.dao.identity.user_dao import UserDao
from hostnode.db.session import get_db

# --- 定义 AuthContext ---
class AuthContext(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)
    user: User
    identity_key: str

async def get_identity_key(request: Request) -> str:
    """
    外部认证层已经完成了签名校验，这里只读取中间件放入 request.state 的身份公钥。
    """
    identity_key = getattr(request.state, "identity_key", None)
    if not identity_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials were not provided."
        )
    return identity_key

# --- [主依赖项] ---
async def get_auth(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> AuthContext:
    """
    The single entry point for authentication.
    Only registered users may call authenticated routes.
    """
    identity_key = await get_identity_key(request)
    user = await UserDao(db).get_by_identity_key(identity_key)
    if user is None:
        logging.warning(f"Unregistered identity {identity_key[:16]}... rejected")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not registered")
    return AuthContext(user=user, identity_key=identity_key)

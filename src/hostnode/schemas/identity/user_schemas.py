# src/hostnode/schemas/identity/user_schemas.py

from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import Optional

class UserRegister(BaseModel):
    email: Optional[EmailStr] = Field(None, description="接收项目通知的邮箱")

class UserRead(BaseModel):
    identity_key: str
    email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

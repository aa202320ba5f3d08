from sqlalchemy import Column, Integer, String, DateTime, func
from sqlalchemy.orm import relationship
from hostnode.db.base import Base

class User(Base):
    """
    已注册的调用方。身份由外部认证层校验，这里只记录 identity_key 与通知邮箱。
    """
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    # [必要] 外部认证层提供的身份公钥
    identity_key = Column(String(66), nullable=False, unique=True, index=True, comment="调用方身份公钥")
    email = Column(String(255), nullable=True, index=True, comment="用于接收通知的邮箱")
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    admin_of = relationship("ProjectAdmin", back_populates="user", cascade="all, delete-orphan")

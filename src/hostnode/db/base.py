# hostnode/db/base.py

from sqlalchemy import MetaData, Column, DateTime, func
from sqlalchemy.orm import declarative_base

# 约束统一命名，Alembic 迁移与 drop_all 依赖稳定的约束名
naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

Base = declarative_base(metadata=MetaData(naming_convention=naming_convention))

class TimestampMixin:
    """可变记录的创建/更新时间。追加型记录 (账本、日志) 只有 timestamp，不使用此 mixin。"""
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

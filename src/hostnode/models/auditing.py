import enum
from sqlalchemy import Column, Integer, Text, Enum, ForeignKey, DateTime, func
from sqlalchemy.orm import relationship
from hostnode.db.base import Base

class LogLevel(enum.Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

class ProjectLog(Base):
    """
    审计日志表。deployment_id 为空的行构成项目级日志流，
    非空的行构成部署级日志流。
    """
    __tablename__ = 'project_logs'

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    deployment_id = Column(Integer, ForeignKey('deployments.id', ondelete='CASCADE'), nullable=True, index=True)
    level = Column(Enum(LogLevel), nullable=False, default=LogLevel.INFO)
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, server_default=func.now(), index=True)

    project = relationship("Project", back_populates="logs")
    deployment = relationship("Deployment")

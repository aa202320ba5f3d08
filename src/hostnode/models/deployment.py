import enum
from sqlalchemy import (
    Column, Integer, String, Text, JSON, Enum, ForeignKey, DateTime, func
)
from sqlalchemy.orm import relationship
from hostnode.db.base import Base, TimestampMixin
from hostnode.utils.id_generator import generate_hex_id

class DeploymentStatus(enum.Enum):
    CREATED = "created"
    UPLOADING = "uploading"
    VALIDATING = "validating"
    BUILDING = "building"
    PROVISIONING = "provisioning"
    ROLLED_OUT = "rolled_out"   # 终态
    FAILED = "failed"           # 终态

class Deployment(TimestampMixin, Base):
    """
    部署表 - 一次提交(manifest + artifact)对应一行。
    镜像构建完成后不可变，重新部署永远是新的一行。
    """
    __tablename__ = 'deployments'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(32), nullable=False, unique=True, index=True, default=generate_hex_id)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    creator_identity_key = Column(String(66), nullable=False, comment="发起部署的身份")

    artifact_path = Column(String(1024), nullable=True, comment="暂存区中的 artifact 路径")
    service_name = Column(String(255), nullable=True, comment="v2 manifest 的服务选择器")
    status = Column(Enum(DeploymentStatus), nullable=False, default=DeploymentStatus.CREATED, index=True)

    agent_image = Column(String(512), nullable=True)
    frontend_image = Column(String(512), nullable=True)
    # 规范化后的服务描述快照，供后续仅恢复 Ingress 时重新编译
    spec_snapshot = Column(JSON, nullable=True)
    error_summary = Column(Text, nullable=True)

    project = relationship("Project", back_populates="deployments")

class Release(Base):
    """
    Release 表 - 每个项目唯一的可部署单元，记录最后一次成功应用的资源集合。
    name/namespace 是项目 uuid 的纯函数。
    """
    __tablename__ = 'releases'

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, unique=True)
    name = Column(String(63), nullable=False)
    namespace = Column(String(63), nullable=False)
    revision = Column(Integer, nullable=False, default=0)
    digest = Column(String(64), nullable=True, comment="拓扑规范化 JSON 的 sha256")
    documents = Column(JSON, nullable=False, default=list, comment="最后一次成功应用的资源文档")
    deployment_id = Column(Integer, ForeignKey('deployments.id', ondelete='SET NULL'), nullable=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="release")
    deployment = relationship("Deployment")

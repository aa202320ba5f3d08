import enum
from sqlalchemy import (
    Column, Integer, BigInteger, String, JSON, Boolean, Enum, ForeignKey,
    DateTime, func, UniqueConstraint
)
from sqlalchemy.orm import relationship
from hostnode.db.base import Base, TimestampMixin
from hostnode.utils.id_generator import generate_hex_id

class Network(str, enum.Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"

class ProjectStatus(enum.Enum):
    ACTIVE = "active"
    DELETING = "deleting"   # 删除栅栏: 进行中的部署看到此状态必须快速失败

class Project(TimestampMixin, Base):
    """
    项目(租户)表 - 计费、部署与集群资源的归属主体。
    """
    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True, comment="项目唯一主键ID")
    # [必要] 对外暴露的ID，同时决定 namespace / release 名称
    uuid = Column(String(32), nullable=False, unique=True, index=True, default=generate_hex_id, comment="项目的全局唯一标识符")
    name = Column(String(255), nullable=False, default="Unnamed Project")
    network = Column(Enum(Network), nullable=False, default=Network.MAINNET, comment="链网络选择")

    # --- 财务核心字段 ---
    # [关键] 余额可以为负; 只能通过 BillingService 与 LedgerEntry 同事务修改
    balance = Column(BigInteger, nullable=False, default=0, comment="余额 (satoshis)")

    # --- 运行时配置 ---
    funding_key = Column(String(64), nullable=True, comment="项目专用资金私钥 (hex)")
    requires_funding = Column(Boolean, nullable=False, default=False, comment="是否向工作负载注入资金私钥与网络")
    agent_config = Column(JSON, nullable=False, default=dict, comment="环境变量覆盖 (last-wins)")

    # --- 已验证的自定义域名 ---
    frontend_custom_domain = Column(String(255), nullable=True)
    agent_custom_domain = Column(String(255), nullable=True)

    status = Column(Enum(ProjectStatus), nullable=False, default=ProjectStatus.ACTIVE, index=True)

    # --- 关系定义 (删除项目时级联清理所有记账数据) ---
    admins = relationship("ProjectAdmin", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    deployments = relationship("Deployment", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    ledger_entries = relationship("LedgerEntry", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    logs = relationship("ProjectLog", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    release = relationship("Release", back_populates="project", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_suspended(self) -> bool:
        return self.balance < 0

class ProjectAdmin(Base):
    """项目管理员关系表"""
    __tablename__ = 'project_admins'

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    identity_key = Column(String(66), ForeignKey('users.identity_key', ondelete='CASCADE'), nullable=False, index=True)
    added_at = Column(DateTime, nullable=False, server_default=func.now())

    project = relationship("Project", back_populates="admins")
    user = relationship("User", back_populates="admin_of", lazy="joined")

    __table_args__ = (
        UniqueConstraint('project_id', 'identity_key', name='uq_project_admin'),
    )

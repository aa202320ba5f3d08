# src/hostnode/schemas/project/project_schemas.py

from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Dict, Any, Literal
from hostnode.models import Network, ProjectStatus, LogLevel
from hostnode.schemas.manifest.manifest_schemas import validate_env_names
from hostnode.schemas.identity.user_schemas import UserRead

FUNDING_KEY_PATTERN = r"^[0-9a-f]{64}$"

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="项目名称")
    network: Network = Field(Network.MAINNET, description="链网络")
    funding_key: Optional[str] = Field(None, pattern=FUNDING_KEY_PATTERN, description="64位小写十六进制私钥; 为空时自动生成")
    requires_funding: bool = Field(False, description="是否向工作负载注入资金私钥")

class ProjectRead(BaseModel):
    uuid: str
    name: str
    network: Network
    balance: int
    status: ProjectStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ProjectInfo(ProjectRead):
    requires_funding: bool
    agent_config: Dict[str, str] = Field(default_factory=dict)
    frontend_custom_domain: Optional[str] = None
    agent_custom_domain: Optional[str] = None
    # 以下字段来自集群实时状态
    online: bool = False
    deployment_id: Optional[str] = None
    frontend_url: Optional[str] = None
    agent_url: Optional[str] = None
    ingress_hosts: List[str] = Field(default_factory=list)
    ssl_enabled: bool = False

class AgentConfigUpdate(BaseModel):
    config: Dict[str, str] = Field(..., description="环境变量覆盖，整体替换")

    @field_validator("config")
    @classmethod
    def check_names(cls, value: Dict[str, str]) -> Dict[str, str]:
        return validate_env_names(value)

class SettingsUpdate(BaseModel):
    env: Optional[Dict[str, str]] = Field(None, description="合并到现有的环境变量覆盖")
    requires_funding: Optional[bool] = None

    @field_validator("env")
    @classmethod
    def check_env(cls, value: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        return validate_env_names(value) if value else value

class AdminChange(BaseModel):
    identity_key_or_email: str = Field(..., min_length=1, description="身份公钥或已注册邮箱")

class AdminRead(BaseModel):
    identity_key: str
    added_at: datetime
    user: Optional[UserRead] = None

    model_config = ConfigDict(from_attributes=True)

class LogRead(BaseModel):
    level: LogLevel
    message: str
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)

ResourceName = Literal["frontend", "agent", "mongo", "mysql", "redis"]
SinceWindow = Literal["5m", "15m", "30m", "1h", "2h", "6h", "12h", "1d", "2d", "7d"]

class ResourceLogQuery(BaseModel):
    since: SinceWindow = "1h"
    tail: int = Field(1000, ge=1, le=10000)
    level: Literal["all", "error", "warn", "info"] = "all"

class ResourceLogs(BaseModel):
    resource: ResourceName
    logs: str

class PodRead(BaseModel):
    name: str
    phase: str
    ready: bool
    restart_count: int
    containers: List[str]

class ProjectStatusRead(BaseModel):
    namespace: str
    pods: List[PodRead] = Field(default_factory=list)
    release_revision: Optional[int] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

# src/hostnode/schemas/manifest/manifest_schemas.py

"""
agent-manifest.json 的两种线上格式 (v1 单服务 / v2 多服务)，
以及编译后的内部规范化形式 ServiceSpec。
"""

import re
from typing import Dict, List, Optional, Literal, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Kubernetes 对容器环境变量名的约束
ENV_NAME_PATTERN = re.compile(r"^[-._a-zA-Z][-._a-zA-Z0-9]*$")

AgentType = Literal["openclaw", "agidentity", "custom"]
Runtime = Literal["node", "python", "docker"]

def stringify_env_values(env: Any) -> Any:
    """数字与布尔值按字面转成字符串；其它类型留给类型校验报错。"""
    if not isinstance(env, dict):
        return env
    coerced = {}
    for name, value in env.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (int, float)):
            value = str(value)
        coerced[name] = value
    return coerced

def validate_env_names(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if env:
        for name in env:
            if not ENV_NAME_PATTERN.match(name):
                raise ValueError(f"Invalid environment variable name: {name!r}")
    return env

class _ManifestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

# --- 组成部分 ---

class AgentSection(_ManifestModel):
    type: AgentType
    image: Optional[str] = Field(None, description="预构建镜像，存在时跳过构建")
    dockerfile: Optional[str] = Field(None, description="artifact 内 Dockerfile 的相对路径")
    build_context: str = Field(".", alias="buildContext")
    runtime: Optional[Runtime] = None

class ResourceRequest(_ManifestModel):
    cpu: Optional[str] = None
    memory: Optional[str] = None
    gpu: Optional[int] = Field(None, ge=0, description="GPU 数量")
    tee: bool = False
    tee_inference_proxy: bool = Field(False, alias="teeInferenceProxy")

    @property
    def gpu_count(self) -> int:
        return self.gpu or 0

class HealthCheck(_ManifestModel):
    path: str
    port: Optional[int] = Field(None, gt=0, lt=65536)
    interval_seconds: int = Field(30, alias="intervalSeconds", gt=0)

class FrontendSection(_ManifestModel):
    directory: str = "frontend"
    image: Optional[str] = None

class StorageSection(_ManifestModel):
    enabled: bool = False
    size: Optional[str] = None
    mount_path: str = Field("/data", alias="mountPath")

class DatabaseFlags(_ManifestModel):
    mysql: bool = False
    mongo: bool = False
    redis: bool = False

class DeploymentTarget(_ManifestModel):
    name: Optional[str] = None
    provider: str
    project_id: Optional[str] = Field(None, alias="projectID")
    network: Optional[str] = None
    mandala_cloud_url: Optional[str] = Field(None, alias="MandalaCloudURL")
    capabilities: Optional[Dict[str, Any]] = None

class ServiceLink(_ManifestModel):
    from_: str = Field(..., alias="from")
    to: str
    env_var: str = Field(..., alias="envVar")

    @field_validator("env_var")
    @classmethod
    def check_env_var(cls, v: str) -> str:
        if not ENV_NAME_PATTERN.match(v):
            raise ValueError(f"Invalid environment variable name: {v!r}")
        return v

# --- 线上格式 ---

class ServiceDefinition(_ManifestModel):
    agent: AgentSection
    env: Optional[Dict[str, str]] = None
    resources: Optional[ResourceRequest] = None
    ports: Optional[List[int]] = None
    health_check: Optional[HealthCheck] = Field(None, alias="healthCheck")
    frontend: Optional[FrontendSection] = None
    storage: Optional[StorageSection] = None
    databases: Optional[DatabaseFlags] = None

    @field_validator("env", mode="before")
    @classmethod
    def coerce_env(cls, v: Any) -> Any:
        return stringify_env_values(v)

    @field_validator("env")
    @classmethod
    def check_env(cls, v: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        return validate_env_names(v)

    @field_validator("ports")
    @classmethod
    def check_ports(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is not None:
            if not v:
                raise ValueError("ports must not be empty")
            for port in v:
                if port <= 0 or port >= 65536:
                    raise ValueError(f"Invalid port: {port}")
        return v

class ManifestV1(ServiceDefinition):
    schema_marker: str = Field(..., alias="schema")
    schema_version: str = Field("1.0", alias="schemaVersion")
    deployments: List[DeploymentTarget] = Field(default_factory=list)

class ManifestV2(_ManifestModel):
    schema_marker: str = Field(..., alias="schema")
    schema_version: Literal["2.0"] = Field(..., alias="schemaVersion")
    services: Dict[str, ServiceDefinition]
    links: List[ServiceLink] = Field(default_factory=list)
    env: Optional[Dict[str, str]] = None
    deployments: List[DeploymentTarget] = Field(default_factory=list)

    @field_validator("env", mode="before")
    @classmethod
    def coerce_env(cls, v: Any) -> Any:
        return stringify_env_values(v)

    @field_validator("env")
    @classmethod
    def check_env(cls, v: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        return validate_env_names(v)

# --- 编译产物 ---

class NodeCapability(BaseModel):
    gpu_enabled: bool = False
    gpu_type: Optional[str] = None
    tee_enabled: bool = False
    tee_technology: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "NodeCapability":
        return cls(
            gpu_enabled=settings.GPU_ENABLED,
            gpu_type=settings.GPU_TYPE,
            tee_enabled=settings.TEE_ENABLED,
            tee_technology=settings.TEE_TECHNOLOGY,
        )

class ServiceSpec(_ManifestModel):
    """规范化后的单服务描述，构建流水线与拓扑生成器的唯一输入。"""
    service_name: Optional[str] = None
    agent: AgentSection
    env: Dict[str, str] = Field(default_factory=dict)
    links_env: Dict[str, str] = Field(default_factory=dict)
    resources: Optional[ResourceRequest] = None
    ports: List[int]
    health_check: Optional[HealthCheck] = None
    frontend: Optional[FrontendSection] = None
    storage: Optional[StorageSection] = None
    databases: DatabaseFlags = Field(default_factory=DatabaseFlags)
    target: DeploymentTarget

    @property
    def primary_port(self) -> int:
        return self.ports[0]

    @property
    def gpu_count(self) -> int:
        return self.resources.gpu_count if self.resources else 0

    @property
    def storage_enabled(self) -> bool:
        return bool(self.storage and self.storage.enabled)

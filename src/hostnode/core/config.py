# hostnode/core/config.py
import os
from dotenv import load_dotenv
load_dotenv(".env")
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, HttpUrl, computed_field
from typing import Optional, List, Literal

class Settings(BaseSettings):
    # model_config 会自动加载 .env 文件
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # 应用配置 (会自动转换类型)
    APP_ENV: str = "production"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 7777
    NODE_SERVER_BASEURL: str = "http://localhost:7777"
    NODE_IDENTITY_KEY: Optional[str] = None

    # --- Database ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "hostnode"
    DB_PASSWORD: str = "hostnode"
    DB_NAME: str = "hostnode"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # 测试库: 默认使用内存 SQLite，CI 中可以指向真实的 Postgres
    DATABASE_URL_TEST: str = "sqlite+aiosqlite://"

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DB: int = 0

    @computed_field
    @property
    def REDIS_URL(self) -> str:
        password = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{password}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # --- Node capability ---
    GPU_ENABLED: bool = False
    GPU_TYPE: Optional[str] = None
    GPU_TOTAL: int = 0
    TEE_ENABLED: bool = False
    TEE_TECHNOLOGY: Optional[str] = None

    # --- Deployment domain & ingress ---
    PROJECT_DEPLOYMENT_DNS_NAME: str = Field("example.com", description="Base domain for generated agent/frontend hostnames")
    INGRESS_CLASS_NAME: str = "nginx"
    CERT_CLUSTER_ISSUER: str = "letsencrypt-production"
    DOMAIN_VERIFICATION_PREFIX: str = "mandala_project"

    # --- Build & registry ---
    DOCKER_REGISTRY: str = "mandala-registry:5000"
    STAGING_DIR: str = "/tmp/hostnode-staging"
    MAX_ARTIFACT_SIZE_BYTES: int = 524288000
    BUILD_TIMEOUT_SECONDS: int = 1800
    PUSH_TIMEOUT_SECONDS: int = 600
    # 写入审计日志的构建输出上限 (字符)
    BUILD_LOG_LIMIT: int = 3000

    # --- Cluster ---
    KUBECONFIG: Optional[str] = None
    CLUSTER_IN_CLUSTER: bool = False
    RELEASE_PREFIX: str = "mandala-project"
    APPLY_TIMEOUT_SECONDS: int = 300
    ROLLOUT_TIMEOUT_SECONDS: int = 600
    ROLLOUT_POLL_SECONDS: float = 3.0
    TENANT_LOCK_TIMEOUT_SECONDS: int = 3600
    TENANT_LOCK_WAIT_SECONDS: int = 1800
    # 任务先于请求事务提交被 worker 取到时，按此间隔重试等待提交可见
    JOB_HANDOFF_MAX_TRIES: int = 5
    JOB_HANDOFF_RETRY_SECONDS: int = 2

    # --- Storage defaults for stateful resources ---
    MYSQL_STORAGE_SIZE: str = "20Gi"
    MONGO_STORAGE_SIZE: str = "20Gi"
    AGENT_STORAGE_SIZE: str = "10Gi"

    # --- Tenant database credentials (shared with tenant workloads) ---
    TENANT_MYSQL_ROOT_PASSWORD: str = "rootpassword"
    TENANT_MYSQL_DATABASE: str = "projectdb"
    TENANT_MYSQL_USER: str = "projectUser"
    TENANT_MYSQL_PASSWORD: str = "projectPass"
    TENANT_MONGO_ROOT_USERNAME: str = "root"
    TENANT_MONGO_ROOT_PASSWORD: str = "rootpassword"

    # --- Billing (satoshis per 5 minute window) ---
    BILLING_INTERVAL_MINUTES: int = 5
    CPU_RATE_PER_CORE_5MIN: int = 1000
    MEM_RATE_PER_GB_5MIN: int = 500
    DISK_RATE_PER_GB_5MIN: int = 10
    NET_RATE_PER_GB_5MIN: int = 200
    GPU_RATE_PER_UNIT_5MIN: int = 5000
    MIN_DEPLOY_BALANCE: int = 1

    # --- Collaborators ---
    NOTIFIER: Literal["log", "webhook"] = "log"
    NOTIFICATION_WEBHOOK_URL: Optional[HttpUrl] = None
    REGISTRY_ENABLED: bool = True
    ADVERTISEMENT_URL: Optional[HttpUrl] = None
    ADVERTISEMENT_MAX_TRIES: int = 5
    HTTP_TIMEOUT_SECONDS: float = 10.0
    DNS_TIMEOUT_SECONDS: float = 5.0

    SUPPORTED_AGENT_TYPES: List[str] = ["agidentity", "openclaw", "custom"]
    SUPPORTED_RUNTIMES: List[str] = ["node", "python", "docker"]

    @computed_field
    @property
    def STAGING_PATH(self) -> str:
        return os.path.abspath(self.STAGING_DIR)

settings = Settings()

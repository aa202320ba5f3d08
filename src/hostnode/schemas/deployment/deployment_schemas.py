# src/hostnode/schemas/deployment/deployment_schemas.py

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from hostnode.models import DeploymentStatus

class DeploymentRead(BaseModel):
    uuid: str
    status: DeploymentStatus
    service_name: Optional[str] = None
    agent_image: Optional[str] = None
    frontend_image: Optional[str] = None
    error_summary: Optional[str] = None
    creator_identity_key: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class DeploymentCreated(BaseModel):
    deployment_id: str = Field(..., description="新部署的 uuid")
    upload_url: str = Field(..., description="以原始请求体上传 gzip tarball 的地址")

# src/hostnode/schemas/public/public_schemas.py

from pydantic import BaseModel
from typing import List, Optional

class PricingRead(BaseModel):
    cpu_rate_per_5min: int
    mem_rate_per_5min: int
    disk_rate_per_5min: int
    net_rate_per_5min: int
    gpu_rate_per_5min: int
    currency: str = "BSV satoshis"
    interval: str

class NodeInfo(BaseModel):
    identity_key: Optional[str] = None
    gpu: bool
    gpu_type: Optional[str] = None
    tee: bool
    tee_technology: Optional[str] = None
    supported_agent_types: List[str]
    supported_runtimes: List[str]
    pricing: PricingRead
    project_deployment_domain: str

# src/hostnode/schemas/domain/domain_schemas.py

from pydantic import BaseModel, Field
from typing import Literal

DomainKind = Literal["frontend", "agent"]

class DomainVerifyRequest(BaseModel):
    domain: str = Field(..., min_length=1, max_length=253)

class DomainVerifyResult(BaseModel):
    kind: DomainKind
    domain: str
    verified: bool = True

# src/hostnode/schemas/billing/billing_schemas.py

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, PositiveInt
from typing import Optional, Dict, Any
from hostnode.models import TransactionType

class PaymentRequest(BaseModel):
    amount: PositiveInt = Field(..., description="充值金额 (satoshis)")
    reason: Dict[str, Any] = Field(default_factory=dict, description="付款元数据，例如交易 txid")

class CreditResult(BaseModel):
    balance: int
    reenable_queued: bool = Field(False, description="本次充值是否触发了 Ingress 恢复")

class LedgerEntryRead(BaseModel):
    type: TransactionType
    amount: int
    balance_after: int
    reason: Optional[Dict[str, Any]] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)

class BillingStatsQuery(BaseModel):
    type: Optional[TransactionType] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: int = Field(100, ge=1, le=1000)

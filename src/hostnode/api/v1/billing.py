# src/hostnode/api/v1/billing.py

from datetime import datetime
from fastapi import APIRouter, Query
from typing import List, Optional
from hostnode.core.context import AppContext
from hostnode.api.dependencies.context import AuthContextDep
from hostnode.models import TransactionType
from hostnode.schemas.common import JsonResponse
from hostnode.schemas.billing.billing_schemas import PaymentRequest, CreditResult, LedgerEntryRead, BillingStatsQuery
from hostnode.services.billing.billing_service import BillingService
from hostnode.services.project.project_service import ProjectService

router = APIRouter()

@router.post("/{project_uuid}/pay", response_model=JsonResponse[CreditResult], summary="Add Funds")
async def pay(project_uuid: str, payment_in: PaymentRequest, context: AppContext = AuthContextDep):
    project = await ProjectService(context).get_project_for_admin(project_uuid, context.actor)
    result = await BillingService(context).pay(project, payment_in.amount, payment_in.reason, context.actor)
    return JsonResponse(data=result)

@router.get("/{project_uuid}/billing/stats", response_model=JsonResponse[List[LedgerEntryRead]], summary="Ledger Entries")
async def billing_stats(
    project_uuid: str,
    type: Optional[TransactionType] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    context: AppContext = AuthContextDep
):
    project = await ProjectService(context).get_project_for_admin(project_uuid, context.actor)
    query = BillingStatsQuery(type=type, start=start, end=end, page=page, limit=limit)
    entries = await BillingService(context).stats(project, query)
    return JsonResponse(data=entries)

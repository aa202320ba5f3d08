# src/hostnode/api/v1/public.py

from fastapi import APIRouter
from hostnode.schemas.common import JsonResponse
from hostnode.schemas.public.public_schemas import NodeInfo
from hostnode.services.node.node_service import node_info

router = APIRouter()

@router.get("", response_model=JsonResponse[NodeInfo], summary="Node Capabilities and Pricing")
async def get_public_info():
    return JsonResponse(data=node_info())

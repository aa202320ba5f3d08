# src/hostnode/api/v1/domain.py

from fastapi import APIRouter
from hostnode.core.context import AppContext
from hostnode.api.dependencies.context import AuthContextDep
from hostnode.schemas.common import JsonResponse
from hostnode.schemas.domain.domain_schemas import DomainKind, DomainVerifyRequest, DomainVerifyResult
from hostnode.services.domain.domain_service import DomainService
from hostnode.services.project.project_service import ProjectService

router = APIRouter()

@router.post(
    "/{project_uuid}/domains/{kind}",
    response_model=JsonResponse[DomainVerifyResult],
    summary="Verify Custom Domain",
    description="Checks the ownership TXT record and stores the domain; it takes effect on the next deployment."
)
async def verify_domain(
    project_uuid: str,
    kind: DomainKind,
    domain_in: DomainVerifyRequest,
    context: AppContext = AuthContextDep
):
    project = await ProjectService(context).get_project_for_admin(project_uuid, context.actor)
    result = await DomainService(context).verify(project, kind, domain_in.domain)
    return JsonResponse(data=result)

# src/hostnode/api/v1/deployment.py

from fastapi import APIRouter, Header, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from typing import List, Optional
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.api.dependencies.context import AuthContextDep
from hostnode.schemas.common import JsonResponse
from hostnode.schemas.deployment.deployment_schemas import DeploymentRead, DeploymentCreated
from hostnode.services.deployment.deployment_service import DeploymentService
from hostnode.services.exceptions import DeployValidationError
from hostnode.services.project.project_service import ProjectService

router = APIRouter()

@router.post(
    "/{project_uuid}/deployments",
    response_model=JsonResponse[DeploymentCreated],
    status_code=status.HTTP_201_CREATED,
    summary="Create Deployment"
)
async def create_deployment(project_uuid: str, context: AppContext = AuthContextDep):
    created = await DeploymentService(context).create_deployment(project_uuid, context.actor)
    return JsonResponse(data=created)

@router.get("/{project_uuid}/deployments", response_model=JsonResponse[List[DeploymentRead]], summary="List Deployments")
async def list_deployments(
    project_uuid: str,
    page: int = Query(0, ge=0),
    limit: int = Query(0, ge=0, le=500),
    context: AppContext = AuthContextDep
):
    deployments = await ProjectService(context).list_deployments(project_uuid, context.actor, page=page, limit=limit)
    return JsonResponse(data=deployments)

@router.get(
    "/{project_uuid}/deployments/{deployment_uuid}",
    response_model=JsonResponse[DeploymentRead],
    summary="Get Deployment"
)
async def get_deployment(project_uuid: str, deployment_uuid: str, context: AppContext = AuthContextDep):
    deployment = await DeploymentService(context).get_deployment(project_uuid, deployment_uuid, context.actor)
    return JsonResponse(data=deployment)

@router.get(
    "/{project_uuid}/deployments/{deployment_uuid}/logs",
    response_class=PlainTextResponse,
    summary="Deployment Log"
)
async def deployment_logs(project_uuid: str, deployment_uuid: str, context: AppContext = AuthContextDep):
    return await ProjectService(context).deployment_logs(project_uuid, deployment_uuid, context.actor)

@router.post(
    "/{project_uuid}/deployments/{deployment_uuid}/upload",
    response_model=JsonResponse[DeploymentRead],
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload Artifact",
    description="Receives the gzip tarball as the raw request body, validates it and queues the build."
)
async def upload_artifact(
    project_uuid: str,
    deployment_uuid: str,
    request: Request,
    service_name: Optional[str] = Query(None, alias="serviceName"),
    service_header: Optional[str] = Header(None, alias="X-Mandala-Service"),
    context: AppContext = AuthContextDep
):
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > settings.MAX_ARTIFACT_SIZE_BYTES:
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"status": 413, "msg": "Artifact too large", "data": None},
        )
    data = await request.body()
    try:
        deployment = await DeploymentService(context).receive_upload(
            project_uuid, deployment_uuid, data, context.actor, service_name=service_name or service_header
        )
    except DeployValidationError as e:
        # 不抛出：失败状态与审计日志需要随请求事务一起提交
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": 400, "msg": e.message, "data": {"deployment_id": deployment_uuid, "status": "failed"}},
        )
    return JsonResponse(data=deployment, status=202)

# src/hostnode/api/v1/project.py

from fastapi import APIRouter, Query, status
from fastapi.responses import PlainTextResponse
from typing import List
from hostnode.core.context import AppContext
from hostnode.api.dependencies.context import AuthContextDep
from hostnode.schemas.common import JsonResponse, MsgResponse
from hostnode.schemas.project.project_schemas import (
    ProjectCreate, ProjectRead, ProjectInfo, AgentConfigUpdate, SettingsUpdate, AdminChange, AdminRead,
    ResourceLogQuery, ResourceLogs, ResourceName, SinceWindow, ProjectStatusRead
)
from hostnode.services.project.project_service import ProjectService

router = APIRouter()

@router.post("", response_model=JsonResponse[ProjectRead], status_code=status.HTTP_201_CREATED, summary="Create Project")
async def create_project(project_in: ProjectCreate, context: AppContext = AuthContextDep):
    project = await ProjectService(context).create_project(project_in, context.actor)
    return JsonResponse(data=project)

@router.get("", response_model=JsonResponse[List[ProjectRead]], summary="List My Projects")
async def list_projects(context: AppContext = AuthContextDep):
    projects = await ProjectService(context).list_projects(context.actor)
    return JsonResponse(data=projects)

@router.get("/{project_uuid}", response_model=JsonResponse[ProjectInfo], summary="Get Project Info")
async def get_project(project_uuid: str, context: AppContext = AuthContextDep):
    info = await ProjectService(context).get_info(project_uuid, context.actor)
    return JsonResponse(data=info)

@router.delete("/{project_uuid}", response_model=MsgResponse, status_code=status.HTTP_202_ACCEPTED, summary="Delete Project")
async def delete_project(project_uuid: str, context: AppContext = AuthContextDep):
    await ProjectService(context).request_deletion(project_uuid, context.actor)
    return MsgResponse(msg="Project deletion scheduled")

# --- 配置 ---

@router.put("/{project_uuid}/agent-config", response_model=JsonResponse[ProjectInfo], summary="Replace Agent Config")
async def update_agent_config(project_uuid: str, config_in: AgentConfigUpdate, context: AppContext = AuthContextDep):
    info = await ProjectService(context).update_agent_config(project_uuid, config_in, context.actor)
    return JsonResponse(data=info)

@router.patch("/{project_uuid}/settings", response_model=JsonResponse[ProjectInfo], summary="Update Project Settings")
async def update_settings(project_uuid: str, settings_in: SettingsUpdate, context: AppContext = AuthContextDep):
    info = await ProjectService(context).update_settings(project_uuid, settings_in, context.actor)
    return JsonResponse(data=info)

# --- 管理员 ---

@router.get("/{project_uuid}/admins", response_model=JsonResponse[List[AdminRead]], summary="List Admins")
async def list_admins(project_uuid: str, context: AppContext = AuthContextDep):
    admins = await ProjectService(context).list_admins(project_uuid, context.actor)
    return JsonResponse(data=admins)

@router.post("/{project_uuid}/admins", response_model=JsonResponse[List[AdminRead]], summary="Add Admin")
async def add_admin(project_uuid: str, admin_in: AdminChange, context: AppContext = AuthContextDep):
    admins = await ProjectService(context).add_admin(project_uuid, admin_in, context.actor)
    return JsonResponse(data=admins)

@router.post("/{project_uuid}/admins/remove", response_model=JsonResponse[List[AdminRead]], summary="Remove Admin")
async def remove_admin(project_uuid: str, admin_in: AdminChange, context: AppContext = AuthContextDep):
    admins = await ProjectService(context).remove_admin(project_uuid, admin_in, context.actor)
    return JsonResponse(data=admins)

# --- 日志与运维 ---

@router.get("/{project_uuid}/logs", response_class=PlainTextResponse, summary="Project Audit Log")
async def project_logs(project_uuid: str, context: AppContext = AuthContextDep):
    return await ProjectService(context).project_logs(project_uuid, context.actor)

@router.get("/{project_uuid}/logs/resources/{resource}", response_model=JsonResponse[ResourceLogs], summary="Resource Logs")
async def resource_logs(
    project_uuid: str,
    resource: ResourceName,
    since: SinceWindow = Query("1h"),
    tail: int = Query(1000, ge=1, le=10000),
    level: str = Query("all", pattern="^(all|error|warn|info)$"),
    context: AppContext = AuthContextDep
):
    query = ResourceLogQuery(since=since, tail=tail, level=level)
    logs = await ProjectService(context).resource_logs(project_uuid, resource, query, context.actor)
    return JsonResponse(data=logs)

@router.post("/{project_uuid}/restart", response_model=MsgResponse, summary="Restart Workload")
async def restart_project(project_uuid: str, context: AppContext = AuthContextDep):
    await ProjectService(context).restart(project_uuid, context.actor)
    return MsgResponse(msg="Restart requested")

@router.get("/{project_uuid}/status", response_model=JsonResponse[ProjectStatusRead], summary="Pod Status")
async def project_status(project_uuid: str, context: AppContext = AuthContextDep):
    status_read = await ProjectService(context).get_status(project_uuid, context.actor)
    return JsonResponse(data=status_read)

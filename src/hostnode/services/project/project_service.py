# src/hostnode/services/project/project_service.py

import logging
from typing import List, Optional
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.dao.deployment.deployment_dao import DeploymentDao, ReleaseDao
from hostnode.dao.identity.user_dao import UserDao
from hostnode.dao.project.project_dao import ProjectDao, ProjectAdminDao
from hostnode.engine.cluster.base import ClusterError
from hostnode.models import Project, ProjectAdmin, ProjectStatus, User, Deployment, LogLevel
from hostnode.schemas.deployment.deployment_schemas import DeploymentRead
from hostnode.schemas.project.project_schemas import (
    ProjectCreate, ProjectRead, ProjectInfo, AgentConfigUpdate, SettingsUpdate,
    AdminChange, AdminRead, ResourceLogQuery, ResourceLogs, ResourceName, PodRead, ProjectStatusRead
)
from hostnode.services.auditing.audit_service import AuditService, join_feed
from hostnode.services.exceptions import (
    ServiceException, NotFoundError, PermissionDeniedError, InfrastructureError, ConfigurationError,
    InvalidStateTransition
)
from hostnode.services.notification.notification_service import NotificationService
from hostnode.services.release.release_manager import ReleaseManager
from hostnode.services.topology import naming
from hostnode.utils.id_generator import generate_hex_id

logger = logging.getLogger(__name__)

SINCE_SECONDS = {
    "5m": 300, "15m": 900, "30m": 1800, "1h": 3600, "2h": 7200,
    "6h": 21600, "12h": 43200, "1d": 86400, "2d": 172800, "7d": 604800,
}

# 资源名 -> (label selector 中 app 的取值, 容器名)，None 表示使用 release 名
_RESOURCE_TARGETS = {
    "frontend": (None, "frontend"),
    "agent": (None, "agent"),
    "mysql": ("mysql", "mysql"),
    "mongo": ("mongo", "mongo"),
    "redis": ("redis", "redis"),
}

def image_tag(image: Optional[str]) -> Optional[str]:
    if not image:
        return None
    last = image.rsplit("/", 1)[-1]
    return last.split(":", 1)[1] if ":" in last else None

def filter_log_level(logs: str, level: str) -> str:
    if level == "all":
        return logs
    return "\n".join(line for line in logs.splitlines() if level in line.lower())

class ProjectService:
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.project_dao = ProjectDao(context.db)
        self.admin_dao = ProjectAdminDao(context.db)
        self.user_dao = UserDao(context.db)
        self.deployment_dao = DeploymentDao(context.db)
        self.release_dao = ReleaseDao(context.db)
        self.audit = AuditService(context.db)
        self.notifications = NotificationService(context)

    # ==========================================================================
    # 访问控制
    # ==========================================================================

    async def get_project_for_admin(self, project_uuid: str, actor: User) -> Project:
        """只有项目管理员可以操作项目；正在删除的项目对外视为不存在。"""
        project = await self.project_dao.get_by_uuid(project_uuid)
        if project is None or project.status == ProjectStatus.DELETING:
            raise NotFoundError("Project not found.")
        membership = await self.admin_dao.get_membership(project.id, actor.identity_key)
        if membership is None:
            raise PermissionDeniedError("You are not an admin of this project.")
        return project

    # ==========================================================================
    # 生命周期
    # ==========================================================================

    async def create_project(self, data: ProjectCreate, actor: User) -> ProjectRead:
        project = Project(
            name=data.name,
            network=data.network,
            funding_key=data.funding_key or generate_hex_id(32),
            requires_funding=data.requires_funding,
            agent_config={},
            balance=0,
        )
        project = await self.project_dao.add(project)
        await self.admin_dao.add(ProjectAdmin(project_id=project.id, identity_key=actor.identity_key))
        await self.audit.log_project(project, f"Project created by {actor.identity_key}")
        if actor.email:
            await self.notifications.send([actor.email], "welcome_admin", project)
        return ProjectRead.model_validate(project)

    async def list_projects(self, actor: User) -> List[ProjectRead]:
        projects = await self.project_dao.list_by_admin(actor.identity_key)
        return [ProjectRead.model_validate(p) for p in projects if p.status == ProjectStatus.ACTIVE]

    async def get_info(self, project_uuid: str, actor: User) -> ProjectInfo:
        project = await self.get_project_for_admin(project_uuid, actor)
        info = ProjectInfo.model_validate(project)
        namespace = naming.namespace_for(project.uuid)
        domain = settings.PROJECT_DEPLOYMENT_DNS_NAME

        info.agent_url = f"https://{project.agent_custom_domain or naming.agent_host(project.uuid, domain)}"
        last = await self.deployment_dao.get_last_rolled_out(project.id)
        if last is not None and last.frontend_image:
            info.frontend_url = f"https://{project.frontend_custom_domain or naming.frontend_host(project.uuid, domain)}"

        # 集群状态只是附加信息，读取失败不影响返回
        try:
            pods = await self.context.cluster.list_pods(namespace)
            release = naming.release_name_for(project.uuid)
            workload = [p for p in pods if p.labels.get("app") == release]
            info.online = any(p.phase == "Running" and p.ready for p in workload)
            for pod in workload:
                tag = image_tag(pod.images.get("agent"))
                if tag:
                    info.deployment_id = tag
                    break
            ingress = await self.context.cluster.list_ingress_hosts(namespace)
            info.ingress_hosts = ingress["hosts"]
            info.ssl_enabled = ingress["tls"]
        except ClusterError as e:
            logger.warning(f"Could not read live status of project {project.uuid}: {e}")
        return info

    async def update_agent_config(self, project_uuid: str, data: AgentConfigUpdate, actor: User) -> ProjectInfo:
        project = await self.get_project_for_admin(project_uuid, actor)
        project.agent_config = dict(data.config)
        await self.db.flush()
        await self.audit.log_project(project, "Agent configuration updated; redeploy to apply.")
        return await self.get_info(project_uuid, actor)

    async def update_settings(self, project_uuid: str, data: SettingsUpdate, actor: User) -> ProjectInfo:
        project = await self.get_project_for_admin(project_uuid, actor)
        changes = []
        if data.env is not None:
            project.agent_config = {**(project.agent_config or {}), **data.env}
            changes.append(f"env ({', '.join(sorted(data.env))})")
        if data.requires_funding is not None:
            project.requires_funding = data.requires_funding
            changes.append(f"requires_funding={data.requires_funding}")
        await self.db.flush()
        if changes:
            await self.audit.log_project(project, f"Settings updated: {'; '.join(changes)}")
        return await self.get_info(project_uuid, actor)

    # ==========================================================================
    # 管理员
    # ==========================================================================

    async def _resolve_user(self, identity_key_or_email: str) -> User:
        if "@" in identity_key_or_email:
            user = await self.user_dao.get_one(where={"email": identity_key_or_email})
            if user is None:
                raise NotFoundError(f"No registered user with email {identity_key_or_email}.")
            return user
        return await self.user_dao.get_or_create(identity_key_or_email)

    async def list_admins(self, project_uuid: str, actor: User) -> List[AdminRead]:
        project = await self.get_project_for_admin(project_uuid, actor)
        admins = await self.admin_dao.list_by_project(project.id)
        return [AdminRead.model_validate(a) for a in admins]

    async def add_admin(self, project_uuid: str, data: AdminChange, actor: User) -> List[AdminRead]:
        project = await self.get_project_for_admin(project_uuid, actor)
        user = await self._resolve_user(data.identity_key_or_email)
        if await self.admin_dao.get_membership(project.id, user.identity_key):
            raise ServiceException("User is already an admin of this project.")
        await self.admin_dao.add(ProjectAdmin(project_id=project.id, identity_key=user.identity_key))
        await self.audit.log_project(project, f"Admin {user.identity_key} added by {actor.identity_key}")
        if user.email:
            await self.notifications.send([user.email], "admin_added", project)
        return await self.list_admins(project_uuid, actor)

    async def remove_admin(self, project_uuid: str, data: AdminChange, actor: User) -> List[AdminRead]:
        project = await self.get_project_for_admin(project_uuid, actor)
        user = await self._resolve_user(data.identity_key_or_email)
        membership = await self.admin_dao.get_membership(project.id, user.identity_key)
        if membership is None:
            raise NotFoundError("User is not an admin of this project.")
        if await self.admin_dao.count(where={"project_id": project.id}) <= 1:
            raise ServiceException("Cannot remove the last admin of a project.")
        await self.db.delete(membership)
        await self.db.flush()
        await self.audit.log_project(project, f"Admin {user.identity_key} removed by {actor.identity_key}")
        if user.email:
            await self.notifications.send([user.email], "admin_removed", project)
        return await self.list_admins(project_uuid, actor)

    # ==========================================================================
    # 部署与日志
    # ==========================================================================

    async def list_deployments(self, project_uuid: str, actor: User, page: int = 0, limit: int = 0) -> List[DeploymentRead]:
        project = await self.get_project_for_admin(project_uuid, actor)
        deployments = await self.deployment_dao.list_by_project(project.id, page=page, limit=limit)
        return [DeploymentRead.model_validate(d) for d in deployments]

    async def get_deployment(self, project: Project, deployment_uuid: str) -> Deployment:
        deployment = await self.deployment_dao.get_by_uuid(deployment_uuid)
        if deployment is None or deployment.project_id != project.id:
            raise NotFoundError("Deployment not found.")
        return deployment

    async def project_logs(self, project_uuid: str, actor: User) -> str:
        project = await self.get_project_for_admin(project_uuid, actor)
        return join_feed(await self.audit.project_feed(project), newest_first=True)

    async def deployment_logs(self, project_uuid: str, deployment_uuid: str, actor: User) -> str:
        project = await self.get_project_for_admin(project_uuid, actor)
        deployment = await self.get_deployment(project, deployment_uuid)
        return join_feed(await self.audit.deployment_feed(deployment))

    async def resource_logs(
        self, project_uuid: str, resource: ResourceName, query: ResourceLogQuery, actor: User
    ) -> ResourceLogs:
        project = await self.get_project_for_admin(project_uuid, actor)
        app, container = _RESOURCE_TARGETS[resource]
        selector = f"app={app or naming.release_name_for(project.uuid)}"
        try:
            logs = await self.context.cluster.read_logs(
                naming.namespace_for(project.uuid),
                label_selector=selector,
                container=container,
                since_seconds=SINCE_SECONDS[query.since],
                tail_lines=query.tail,
            )
        except ClusterError as e:
            raise InfrastructureError(f"Failed to read {resource} logs.", diagnostics=str(e)) from e
        return ResourceLogs(resource=resource, logs=filter_log_level(logs or "", query.level))

    # ==========================================================================
    # 运维
    # ==========================================================================

    async def restart(self, project_uuid: str, actor: User) -> None:
        project = await self.get_project_for_admin(project_uuid, actor)
        release = naming.release_name_for(project.uuid)
        try:
            await self.context.cluster.restart_deployment(naming.namespace_for(project.uuid), naming.deployment_name(release))
        except ClusterError as e:
            raise InfrastructureError("Failed to restart the project workload.", diagnostics=str(e)) from e
        await self.audit.log_project(project, f"Workload restart requested by {actor.identity_key}")

    async def get_status(self, project_uuid: str, actor: User) -> ProjectStatusRead:
        project = await self.get_project_for_admin(project_uuid, actor)
        namespace = naming.namespace_for(project.uuid)
        try:
            pods = await self.context.cluster.list_pods(namespace)
        except ClusterError as e:
            raise InfrastructureError("Failed to read pod status.", diagnostics=str(e)) from e
        release = await self.release_dao.get_by_project_id(project.id)
        return ProjectStatusRead(
            namespace=namespace,
            pods=[
                PodRead(name=p.name, phase=p.phase, ready=p.ready, restart_count=p.restart_count, containers=p.containers)
                for p in pods
            ],
            release_revision=release.revision if release else None,
        )

    # ==========================================================================
    # 删除
    # ==========================================================================

    async def request_deletion(self, project_uuid: str, actor: User) -> None:
        """
        删除栅栏的第一步：标记 deleting 并把销毁交给 worker。
        此后开始的 apply 在租户锁内会看到该状态并快速失败。
        """
        project = await self.get_project_for_admin(project_uuid, actor)
        if self.context.arq_pool is None:
            raise ConfigurationError("Background worker is not available.")
        project.status = ProjectStatus.DELETING
        await self.db.flush()
        await self.audit.log_project(project, f"Project deletion requested by {actor.identity_key}", LogLevel.WARN)
        await self.context.arq_pool.enqueue_job("delete_project_task", project.uuid)

    async def teardown(self, project_uuid: str) -> bool:
        """在租户锁内删除 namespace，然后删除项目的全部记录并通知管理员。"""
        project = await self.project_dao.get_by_uuid(project_uuid)
        if project is None:
            logger.warning(f"Project {project_uuid} already removed.")
            return False
        if project.status != ProjectStatus.DELETING:
            raise InvalidStateTransition(f"Project {project_uuid} is not marked for deletion.")

        recipients = await self.notifications.admin_emails(project)
        await ReleaseManager(self.context).teardown(project)
        # 依赖外键 ON DELETE CASCADE 清理部署、账本、日志与 release
        await self.project_dao.delete_where({"id": project.id})
        logger.info(f"Project {project_uuid} deleted.")
        await self.notifications.send(recipients, "project_deleted", project)
        return True

# src/hostnode/services/deployment/deployment_service.py

import asyncio
import logging
from typing import Dict, Optional, Set
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.dao.deployment.deployment_dao import DeploymentDao
from hostnode.engine.builder.base import BaseImageBuilder
from hostnode.models import Project, ProjectStatus, Deployment, DeploymentStatus, LogLevel, User
from hostnode.schemas.deployment.deployment_schemas import DeploymentRead, DeploymentCreated
from hostnode.schemas.manifest.manifest_schemas import NodeCapability
from hostnode.services.auditing.audit_service import AuditService
from hostnode.services.build import artifact
from hostnode.services.build.build_pipeline import BuildPipeline, bound_output
from hostnode.services.exceptions import (
    ConfigurationError, DeployValidationError, InfrastructureError, InsufficientBalance,
    InvalidStateTransition, TenantDeleted
)
from hostnode.services.manifest.manifest_compiler import ManifestCompiler
from hostnode.services.notification.notification_service import NotificationService
from hostnode.services.project.project_service import ProjectService
from hostnode.services.release.release_manager import ReleaseManager
from hostnode.services.topology import naming
from hostnode.services.topology.topology_generator import TenantState, Images, compile_topology

logger = logging.getLogger(__name__)

# 单向状态机；任何非终态都可以进入 failed
ALLOWED_TRANSITIONS: Dict[DeploymentStatus, Set[DeploymentStatus]] = {
    DeploymentStatus.CREATED: {DeploymentStatus.UPLOADING, DeploymentStatus.FAILED},
    DeploymentStatus.UPLOADING: {DeploymentStatus.VALIDATING, DeploymentStatus.FAILED},
    DeploymentStatus.VALIDATING: {DeploymentStatus.BUILDING, DeploymentStatus.FAILED},
    DeploymentStatus.BUILDING: {DeploymentStatus.PROVISIONING, DeploymentStatus.FAILED},
    DeploymentStatus.PROVISIONING: {DeploymentStatus.ROLLED_OUT, DeploymentStatus.FAILED},
    DeploymentStatus.ROLLED_OUT: set(),
    DeploymentStatus.FAILED: set(),
}

# 上传请求的事务提交之前，worker 看到的仍是这两个状态
AWAITING_UPLOAD_COMMIT = {DeploymentStatus.CREATED, DeploymentStatus.UPLOADING}

def transition(deployment: Deployment, new_status: DeploymentStatus) -> None:
    current = deployment.status
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(
            f"Deployment {deployment.uuid} cannot move from {current.value} to {new_status.value}."
        )
    deployment.status = new_status

class DeploymentService:
    """
    部署流水线的编排。

    API 侧 (同一个请求事务):
      create -> receive_upload (保存、解压、编译 manifest、校验目录结构) -> 入队
    Worker 侧 (每个阶段单独提交，状态对外可见):
      build -> topology -> release -> rolled_out | failed
    """

    def __init__(
        self,
        context: AppContext,
        builder: Optional[BaseImageBuilder] = None,
        compiler: Optional[ManifestCompiler] = None,
        node: Optional[NodeCapability] = None,
    ):
        self.context = context
        self.db = context.db
        self.builder = builder
        self.node = node or NodeCapability.from_settings(settings)
        self.compiler = compiler or ManifestCompiler(node=self.node)
        self.deployment_dao = DeploymentDao(context.db)
        self.project_service = ProjectService(context)
        self.audit = AuditService(context.db)
        self.notifications = NotificationService(context)

    # ==========================================================================
    # API 侧
    # ==========================================================================

    async def create_deployment(self, project_uuid: str, actor: User) -> DeploymentCreated:
        project = await self.project_service.get_project_for_admin(project_uuid, actor)
        deployment = await self.deployment_dao.add(Deployment(
            project_id=project.id,
            creator_identity_key=actor.identity_key,
            status=DeploymentStatus.CREATED,
        ))
        await self.audit.log_project(project, f"Deployment {deployment.uuid} created by {actor.identity_key}")
        upload_url = (
            f"{settings.NODE_SERVER_BASEURL.rstrip('/')}/api/v1/projects/{project.uuid}"
            f"/deployments/{deployment.uuid}/upload"
        )
        return DeploymentCreated(deployment_id=deployment.uuid, upload_url=upload_url)

    async def get_deployment(self, project_uuid: str, deployment_uuid: str, actor: User) -> DeploymentRead:
        project = await self.project_service.get_project_for_admin(project_uuid, actor)
        deployment = await self.project_service.get_deployment(project, deployment_uuid)
        return DeploymentRead.model_validate(deployment)

    async def receive_upload(
        self,
        project_uuid: str,
        deployment_uuid: str,
        data: bytes,
        actor: User,
        service_name: Optional[str] = None,
    ) -> DeploymentRead:
        """
        同步校验上传的 artifact 并把部署交给 worker。
        校验失败时部署被标记为 failed 并写入审计日志，然后重新抛出原异常。
        """
        project = await self.project_service.get_project_for_admin(project_uuid, actor)
        deployment = await self.project_service.get_deployment(project, deployment_uuid)
        if self.context.arq_pool is None:
            raise ConfigurationError("Background worker is not available.")
        transition(deployment, DeploymentStatus.UPLOADING)

        try:
            if project.balance < settings.MIN_DEPLOY_BALANCE:
                raise InsufficientBalance(
                    f"Project balance must be at least {settings.MIN_DEPLOY_BALANCE} to deploy "
                    f"(current balance: {project.balance})."
                )
            archive_path = await asyncio.to_thread(artifact.save_archive, deployment.uuid, data)
            deployment.artifact_path = archive_path
            transition(deployment, DeploymentStatus.VALIDATING)
            await self.audit.log_deployment(deployment, f"Artifact received ({len(data)} bytes); validating.")

            source = await asyncio.to_thread(artifact.extract_archive, archive_path, artifact.source_dir(deployment.uuid))
            raw = await asyncio.to_thread(artifact.load_manifest, source)
            spec = self.compiler.compile(raw, project.uuid, project.network.value, service_name)
            BuildPipeline(self.builder).validate_layout(spec, source)
        except DeployValidationError as e:
            await self._fail(project, deployment, e.message)
            artifact.cleanup(deployment.uuid)
            raise

        deployment.service_name = spec.service_name
        await self.db.flush()
        await self.audit.log_deployment(deployment, "Manifest validated; deployment queued.")
        await self.context.arq_pool.enqueue_job("run_deployment_task", deployment.uuid)
        await self.db.refresh(deployment)
        return DeploymentRead.model_validate(deployment)

    # ==========================================================================
    # Worker 侧
    # ==========================================================================

    async def run(self, deployment_uuid: str) -> Optional[DeploymentStatus]:
        deployment = await self.deployment_dao.get_by_uuid(deployment_uuid)
        if deployment is None:
            logger.warning(f"Deployment {deployment_uuid} no longer exists; skipping.")
            return None
        if deployment.status in AWAITING_UPLOAD_COMMIT:
            logger.info(f"Deployment {deployment_uuid} is still {deployment.status.value}; upload not committed yet.")
            return deployment.status
        if deployment.status != DeploymentStatus.VALIDATING:
            logger.warning(f"Deployment {deployment_uuid} is {deployment.status.value}; nothing to run.")
            return deployment.status

        deployment_id, project_id = deployment.id, deployment.project_id
        project = await self.db.get(Project, project_id)

        async def on_step(message: str):
            await self.audit.log_deployment(deployment, message)
            await self.db.commit()

        try:
            if project is None or project.status == ProjectStatus.DELETING:
                raise TenantDeleted(f"Project of deployment {deployment_uuid} has been deleted.")
            if self.builder is None:
                raise ConfigurationError("No image builder configured.")

            source = artifact.source_dir(deployment.uuid)
            raw = await asyncio.to_thread(artifact.load_manifest, source)
            spec = self.compiler.compile(raw, project.uuid, project.network.value, deployment.service_name)

            transition(deployment, DeploymentStatus.BUILDING)
            await on_step("Building images...")
            namespace = naming.namespace_for(project.uuid)
            built = await BuildPipeline(self.builder).run(spec, source, namespace, deployment.uuid, on_step=on_step)
            deployment.agent_image = built.agent_image
            deployment.frontend_image = built.frontend_image

            transition(deployment, DeploymentStatus.PROVISIONING)
            deployment.spec_snapshot = spec.model_dump(mode="json")
            await on_step("Provisioning cluster resources...")
            topology = compile_topology(
                spec,
                TenantState.from_project(project),
                self.node,
                Images(agent_image=built.agent_image, frontend_image=built.frontend_image),
            )
            outcome = await ReleaseManager(self.context).apply(project, topology, deployment, on_step=on_step)

            transition(deployment, DeploymentStatus.ROLLED_OUT)
            await self.audit.log_both(project, deployment, f"Deployment {deployment.uuid} rolled out (revision {outcome.revision}).")
            await self.db.commit()
        except (DeployValidationError, InfrastructureError, TenantDeleted, ConfigurationError) as e:
            logger.error(f"Deployment {deployment_uuid} failed: {e.message}", exc_info=True)
            await self._fail_after_rollback(deployment_id, project_id, e)
            return DeploymentStatus.FAILED
        except Exception as e:
            logger.error(f"Unexpected error in deployment {deployment_uuid}: {e}", exc_info=True)
            await self._fail_after_rollback(deployment_id, project_id, e)
            raise
        finally:
            artifact.cleanup(deployment_uuid)

        await self.notifications.notify_admins(project, "deployment_succeeded", deployment=deployment.uuid)
        return DeploymentStatus.ROLLED_OUT

    async def _fail_after_rollback(self, deployment_id: int, project_id: int, error: Exception) -> None:
        # 回滚未提交的部分状态后重新读取
        await self.db.rollback()
        deployment = await self.db.get(Deployment, deployment_id, populate_existing=True)
        project = await self.db.get(Project, project_id, populate_existing=True)
        if deployment is None or project is None:
            logger.warning(f"Deployment {deployment_id} was removed with its project; nothing to record.")
            return
        if isinstance(error, InfrastructureError):
            summary, diagnostics = error.message, error.diagnostics
        elif isinstance(error, (DeployValidationError, TenantDeleted, ConfigurationError)):
            summary, diagnostics = error.message, None
        else:
            summary, diagnostics = "Internal error during deployment.", f"{type(error).__name__}: {error}"
        await self._fail(project, deployment, summary, diagnostics)
        await self.db.commit()

    async def _fail(
        self, project: Project, deployment: Deployment, summary: str, diagnostics: Optional[str] = None
    ) -> None:
        if deployment.status in (DeploymentStatus.FAILED, DeploymentStatus.ROLLED_OUT):
            return
        transition(deployment, DeploymentStatus.FAILED)
        deployment.error_summary = summary
        await self.db.flush()
        await self.audit.log_project(project, f"Deployment {deployment.uuid} failed: {summary}", LogLevel.ERROR)
        detail = summary if not diagnostics else f"{summary}\n{bound_output(diagnostics)}"
        await self.audit.log_deployment(deployment, detail, LogLevel.ERROR)
        await self.notifications.notify_admins(project, "deployment_failed", deployment=deployment.uuid, error=summary)

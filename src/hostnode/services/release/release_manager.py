# src/hostnode/services/release/release_manager.py

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Tuple
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.dao.deployment.deployment_dao import ReleaseDao
from hostnode.engine.cluster.base import BaseClusterClient, ClusterError
from hostnode.models import Project, ProjectStatus, Release, Deployment
from hostnode.services.exceptions import InfrastructureError, TenantDeleted
from hostnode.services.topology import naming
from hostnode.services.topology.topology_generator import Topology

logger = logging.getLogger(__name__)

StepCallback = Callable[[str], Awaitable[None]]
ResourceKey = Tuple[str, str, str]
IngressFactory = Callable[[Project], Awaitable[Optional[Dict[str, Any]]]]

class RolloutTimeout(Exception):
    pass

class ApplyOutcome(NamedTuple):
    revision: int
    digest: str
    changed: bool

def resource_key(document: Dict[str, Any]) -> ResourceKey:
    return (document["apiVersion"], document["kind"], document["metadata"]["name"])

def has_ingress(documents: List[Dict[str, Any]]) -> bool:
    return any(d["kind"] == "Ingress" for d in documents)

class IngressChange(str, enum.Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"
    UNCHANGED = "unchanged"
    NO_RELEASE = "no_release"
    UNAVAILABLE = "unavailable"      # 没有可用于重建 Ingress 的上线记录

class ReleaseManager:
    """
    把拓扑原子地应用到租户 namespace。

    - 每个租户一把 Redis 锁，apply 与销毁串行执行
    - 锁内重新读取项目 (删除栅栏)
    - 拓扑摘要未变化时不做任何资源变更
    - 任一步失败则回滚到最后一次成功的文档集合
    """

    def __init__(self, context: AppContext, cluster: Optional[BaseClusterClient] = None):
        self.context = context
        self.db = context.db
        self.cluster = cluster or context.cluster
        self.redis = context.redis_service
        self.release_dao = ReleaseDao(context.db)

    async def _fence(self, project_id: int) -> Project:
        project = await self.db.get(Project, project_id, populate_existing=True)
        if project is None or project.status == ProjectStatus.DELETING:
            raise TenantDeleted(f"Project {project_id} has been deleted; release aborted.")
        return project

    # ==========================================================================
    # Apply
    # ==========================================================================

    async def apply(
        self,
        project: Project,
        topology: Topology,
        deployment: Optional[Deployment] = None,
        on_step: Optional[StepCallback] = None
    ) -> ApplyOutcome:
        async def step(message: str):
            logger.info(f"[{topology.namespace}] {message}")
            if on_step:
                await on_step(message)

        async with self.redis.tenant_lock(project.uuid):
            project = await self._fence(project.id)
            release = await self.release_dao.get_by_project_id(project.id)
            digest = topology.digest

            if release and release.digest == digest and await self.cluster.namespace_exists(topology.namespace):
                await step(f"Topology unchanged (revision {release.revision}); nothing to apply.")
                return ApplyOutcome(revision=release.revision, digest=digest, changed=False)

            previous: List[Dict[str, Any]] = list(release.documents) if release else []
            try:
                await self.cluster.ensure_namespace(topology.namespace, labels={"created-by": "mandala"})
                for document in topology.documents:
                    await self.cluster.apply(topology.namespace, document)
                await step(f"Applied {len(topology.documents)} resources to {topology.namespace}.")
                await self._wait_for_rollout(topology.namespace, naming.deployment_name(topology.release_name))
                await step("Rollout complete.")
            except (ClusterError, RolloutTimeout) as e:
                logger.error(f"Release of {topology.namespace} failed: {e}", exc_info=True)
                rollback_error = await self._rollback(topology.namespace, previous, topology.documents)
                diagnostics = str(e) if rollback_error is None else f"{e}\nRollback failed: {rollback_error}"
                raise InfrastructureError("Failed to apply the release to the cluster.", diagnostics=diagnostics) from e

            await self._prune(topology.namespace, previous, topology.documents)
            release = await self._persist(project, release, topology, deployment)
            # 下一个持锁者必须读到这次的文档集合与摘要
            await self.db.commit()

        await self._enqueue_advertisement_refresh()
        return ApplyOutcome(revision=release.revision, digest=digest, changed=True)

    async def _wait_for_rollout(self, namespace: str, name: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.ROLLOUT_TIMEOUT_SECONDS
        while True:
            status = await self.cluster.get_rollout_status(namespace, name)
            if status is not None and status.complete:
                return
            if loop.time() >= deadline:
                raise RolloutTimeout(
                    f"Deployment {name} did not become ready within {settings.ROLLOUT_TIMEOUT_SECONDS}s "
                    f"(last status: {status})"
                )
            await asyncio.sleep(settings.ROLLOUT_POLL_SECONDS)

    async def _rollback(
        self,
        namespace: str,
        previous: List[Dict[str, Any]],
        attempted: List[Dict[str, Any]]
    ) -> Optional[str]:
        """恢复最后一次成功的文档集合，并删除本次新引入的资源。返回回滚错误 (如有)。"""
        previous_keys = {resource_key(d) for d in previous}
        try:
            for document in previous:
                await self.cluster.apply(namespace, document)
            for document in attempted:
                key = resource_key(document)
                if key not in previous_keys:
                    await self.cluster.delete(namespace, *key)
        except ClusterError as e:
            logger.error(f"Rollback of {namespace} failed: {e}", exc_info=True)
            return str(e)
        logger.info(f"Rolled back {namespace} to {len(previous)} last-good resources.")
        return None

    async def _prune(self, namespace: str, previous: List[Dict[str, Any]], current: List[Dict[str, Any]]) -> None:
        current_keys = {resource_key(d) for d in current}
        for document in previous:
            key = resource_key(document)
            if key not in current_keys:
                try:
                    await self.cluster.delete(namespace, *key)
                except ClusterError as e:
                    raise InfrastructureError(f"Failed to prune {key[1]}/{key[2]}.", diagnostics=str(e)) from e
                logger.info(f"Pruned {key[1]}/{key[2]} from {namespace}")

    async def _persist(
        self,
        project: Project,
        release: Optional[Release],
        topology: Topology,
        deployment: Optional[Deployment]
    ) -> Release:
        if release is None:
            release = Release(
                project_id=project.id,
                name=topology.release_name,
                namespace=topology.namespace,
                revision=0,
            )
            self.db.add(release)
        release.revision = (release.revision or 0) + 1
        release.digest = topology.digest
        release.documents = topology.documents
        if deployment is not None:
            release.deployment_id = deployment.id
        await self.db.flush()
        return release

    async def _enqueue_advertisement_refresh(self) -> None:
        if not settings.REGISTRY_ENABLED:
            return
        if self.context.arq_pool is None:
            logger.debug("No arq pool available; skipping advertisement refresh.")
            return
        try:
            await self.context.arq_pool.enqueue_job("refresh_advertisement_task")
        except Exception as e:
            logger.error(f"Failed to enqueue advertisement refresh: {e}", exc_info=True)

    # ==========================================================================
    # Ingress gate & teardown
    # ==========================================================================

    async def reconcile_ingress(self, project: Project, ingress_factory: IngressFactory) -> IngressChange:
        """
        让 Ingress 与余额符号一致。余额在锁内重新读取，判断与变更之间不会被其它 apply 插入。
        欠费且 Ingress 仍在 -> 全部删除 (工作负载保持运行)；
        余额非负且 Ingress 缺失 -> 用 ingress_factory 重新生成并应用。
        """
        namespace = naming.namespace_for(project.uuid)
        async with self.redis.tenant_lock(project.uuid):
            project = await self._fence(project.id)
            release = await self.release_dao.get_by_project_id(project.id)
            if release is None:
                return IngressChange.NO_RELEASE
            exposed = has_ingress(release.documents)

            if project.is_suspended and exposed:
                await self._remove_ingresses(namespace, release)
                change = IngressChange.DISABLED
            elif not project.is_suspended and not exposed:
                ingress = await ingress_factory(project)
                if ingress is None:
                    return IngressChange.UNAVAILABLE
                await self._apply_ingress(namespace, release, ingress)
                change = IngressChange.ENABLED
            else:
                return IngressChange.UNCHANGED

            release.digest = None
            await self.db.commit()
        return change

    async def _apply_ingress(self, namespace: str, release: Release, ingress: Dict[str, Any]) -> None:
        try:
            await self.cluster.apply(namespace, ingress)
        except ClusterError as e:
            raise InfrastructureError("Failed to re-enable ingress.", diagnostics=str(e)) from e
        key = resource_key(ingress)
        release.documents = [d for d in release.documents if resource_key(d) != key] + [ingress]

    async def _remove_ingresses(self, namespace: str, release: Release) -> None:
        # 任一删除失败都不更新记录，下一次收敛会再次尝试
        for document in release.documents:
            if document["kind"] != "Ingress":
                continue
            try:
                await self.cluster.delete(namespace, *resource_key(document))
            except ClusterError as e:
                raise InfrastructureError("Failed to remove ingress.", diagnostics=str(e)) from e
        release.documents = [d for d in release.documents if d["kind"] != "Ingress"]

    async def teardown(self, project: Project) -> bool:
        """删除租户 namespace 及其全部资源。"""
        namespace = naming.namespace_for(project.uuid)
        async with self.redis.tenant_lock(project.uuid):
            try:
                return await self.cluster.delete_namespace(namespace)
            except ClusterError as e:
                raise InfrastructureError("Failed to delete the project namespace.", diagnostics=str(e)) from e

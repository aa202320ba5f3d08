# src/hostnode/engine/cluster/kubernetes_client.py

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError as DynamicNotFoundError, DynamicApiError
from hostnode.core.config import settings
from .base import (
    BaseClusterClient, ClusterError, RolloutStatus, PodStatus, PodUsage, register_cluster_client
)
from .quantity import parse_quantity

logger = logging.getLogger(__name__)

def _gpu_request(container) -> int:
    requests = (container.resources.requests or {}) if container.resources else {}
    return int(requests.get("nvidia.com/gpu", 0))

@register_cluster_client
class KubernetesClusterClient(BaseClusterClient):
    """
    基于官方 kubernetes Python 客户端的实现。
    资源通过 DynamicClient 以 server-side apply 写入；只读查询使用类型化 API。
    """
    name = "kubernetes"
    FIELD_MANAGER = "hostnode"

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        if api_client is None:
            if settings.CLUSTER_IN_CLUSTER:
                config.load_incluster_config()
            else:
                config.load_kube_config(config_file=settings.KUBECONFIG)
            api_client = client.ApiClient()
        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.networking = client.NetworkingV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)
        self._dynamic: Optional[DynamicClient] = None

    def _get_dynamic(self) -> DynamicClient:
        # DynamicClient 构造时会做一次 API discovery，延迟到第一次使用
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    async def _call(self, func, *args, timeout: Optional[float] = None, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=timeout or settings.APPLY_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError as e:
            raise ClusterError(f"Cluster call '{getattr(func, '__name__', func)}' timed out.") from e
        except (ApiException, DynamicApiError) as e:
            raise ClusterError(f"Cluster call '{getattr(func, '__name__', func)}' failed: {e}") from e

    # --- namespaces ---

    def _namespace_exists_sync(self, namespace: str) -> bool:
        try:
            self.core.read_namespace(name=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    async def namespace_exists(self, namespace: str) -> bool:
        return await self._call(self._namespace_exists_sync, namespace)

    def _ensure_namespace_sync(self, namespace: str, labels: Optional[Dict[str, str]]) -> None:
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace, labels=labels))
        try:
            self.core.create_namespace(body=body)
            logger.info(f"Namespace {namespace} created.")
        except ApiException as e:
            if e.status != 409:
                raise

    async def ensure_namespace(self, namespace: str, labels: Optional[Dict[str, str]] = None) -> None:
        await self._call(self._ensure_namespace_sync, namespace, labels)

    def _delete_namespace_sync(self, namespace: str) -> bool:
        try:
            self.core.delete_namespace(name=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    async def delete_namespace(self, namespace: str) -> bool:
        return await self._call(self._delete_namespace_sync, namespace)

    # --- generic resources ---

    def _apply_sync(self, namespace: str, document: Dict[str, Any]) -> None:
        dynamic = self._get_dynamic()
        resource = dynamic.resources.get(api_version=document["apiVersion"], kind=document["kind"])
        dynamic.server_side_apply(
            resource,
            body=document,
            namespace=namespace,
            field_manager=self.FIELD_MANAGER,
            force_conflicts=True,
        )

    async def apply(self, namespace: str, document: Dict[str, Any]) -> None:
        await self._call(self._apply_sync, namespace, document)

    def _delete_sync(self, namespace: str, api_version: str, kind: str, name: str) -> bool:
        dynamic = self._get_dynamic()
        resource = dynamic.resources.get(api_version=api_version, kind=kind)
        try:
            dynamic.delete(resource, name=name, namespace=namespace)
            return True
        except DynamicNotFoundError:
            return False

    async def delete(self, namespace: str, api_version: str, kind: str, name: str) -> bool:
        return await self._call(self._delete_sync, namespace, api_version, kind, name)

    # --- workloads ---

    def _rollout_status_sync(self, namespace: str, name: str) -> Optional[RolloutStatus]:
        try:
            deployment = self.apps.read_namespaced_deployment_status(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        status = deployment.status
        return RolloutStatus(
            desired=deployment.spec.replicas if deployment.spec.replicas is not None else 1,
            updated=status.updated_replicas or 0,
            ready=status.ready_replicas or 0,
            available=status.available_replicas or 0,
            generation=deployment.metadata.generation or 0,
            observed_generation=status.observed_generation or 0,
        )

    async def get_rollout_status(self, namespace: str, name: str) -> Optional[RolloutStatus]:
        return await self._call(self._rollout_status_sync, namespace, name)

    async def restart_deployment(self, namespace: str, name: str) -> None:
        patch = {"spec": {"template": {"metadata": {"annotations": {
            "kubectl.kubernetes.io/restartedAt": datetime.now(timezone.utc).isoformat()
        }}}}}
        await self._call(self.apps.patch_namespaced_deployment, name=name, namespace=namespace, body=patch)

    async def list_pods(self, namespace: str) -> List[PodStatus]:
        pods = await self._call(self.core.list_namespaced_pod, namespace=namespace)
        result = []
        for pod in pods.items:
            statuses = pod.status.container_statuses or []
            result.append(PodStatus(
                name=pod.metadata.name,
                phase=pod.status.phase,
                ready=bool(statuses) and all(c.ready for c in statuses),
                containers=[c.name for c in pod.spec.containers],
                images={c.name: c.image for c in pod.spec.containers},
                restart_count=sum(c.restart_count or 0 for c in statuses),
                labels=pod.metadata.labels or {},
                gpu=sum(_gpu_request(c) for c in pod.spec.containers),
            ))
        return result

    async def read_logs(
        self,
        namespace: str,
        label_selector: str,
        container: str,
        since_seconds: int,
        tail_lines: int
    ) -> str:
        pods = await self._call(self.core.list_namespaced_pod, namespace=namespace, label_selector=label_selector)
        if not pods.items:
            return ""
        pod_name = pods.items[0].metadata.name
        return await self._call(
            self.core.read_namespaced_pod_log,
            name=pod_name,
            namespace=namespace,
            container=container,
            since_seconds=since_seconds,
            tail_lines=tail_lines,
        )

    async def list_ingress_hosts(self, namespace: str) -> Dict[str, Any]:
        ingresses = await self._call(self.networking.list_namespaced_ingress, namespace=namespace)
        hosts: List[str] = []
        tls = False
        for ingress in ingresses.items:
            for rule in ingress.spec.rules or []:
                if rule.host:
                    hosts.append(rule.host)
            tls = tls or bool(ingress.spec.tls)
        return {"hosts": hosts, "tls": tls}

    # --- metering ---

    async def pod_usage(self, namespace: str) -> List[PodUsage]:
        metrics = await self._call(
            self.custom.list_namespaced_custom_object,
            group="metrics.k8s.io", version="v1beta1", namespace=namespace, plural="pods"
        )
        usages = []
        for item in metrics.get("items", []):
            cpu = sum(parse_quantity(c["usage"]["cpu"]) for c in item.get("containers", []))
            memory = sum(parse_quantity(c["usage"]["memory"]) for c in item.get("containers", []))
            usages.append(PodUsage(name=item["metadata"]["name"], cpu_cores=float(cpu), memory_bytes=int(memory)))
        return usages

    async def pvc_requested_bytes(self, namespace: str) -> int:
        claims = await self._call(self.core.list_namespaced_persistent_volume_claim, namespace=namespace)
        total = 0
        for claim in claims.items:
            requests = (claim.spec.resources.requests or {}) if claim.spec.resources else {}
            if "storage" in requests:
                total += int(parse_quantity(requests["storage"]))
        return total

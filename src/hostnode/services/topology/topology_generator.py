# src/hostnode/services/topology/topology_generator.py

"""
拓扑生成器: (ServiceSpec, 租户状态, 节点能力, 镜像) -> 有序的集群资源文档集合。

纯函数，不做任何 I/O。资源以 kubernetes 客户端的类型化模型构建，
再序列化为普通 dict；相同输入总是得到字节级一致的规范化 JSON。
"""

import hashlib
import json
import re
from typing import Any, Dict, List, NamedTuple, Optional
from kubernetes import client
from hostnode.core.config import settings as default_settings
from hostnode.schemas.manifest.manifest_schemas import ServiceSpec, NodeCapability, ENV_NAME_PATTERN
from hostnode.services.exceptions import InvalidDomain, ManifestInvalid, UnsupportedResource
from . import naming

HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)
GPU_RESOURCE = "nvidia.com/gpu"
FRONTEND_PORT = 80

_serializer = client.ApiClient()

def canonical_json(documents: List[Dict[str, Any]]) -> str:
    return json.dumps(documents, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

class TenantState(NamedTuple):
    """拓扑生成所需的项目字段快照。"""
    uuid: str
    network: str
    balance: int
    agent_config: Optional[Dict[str, Any]] = None
    requires_funding: bool = False
    funding_key: Optional[str] = None
    frontend_custom_domain: Optional[str] = None
    agent_custom_domain: Optional[str] = None

    @classmethod
    def from_project(cls, project) -> "TenantState":
        network = project.network.value if hasattr(project.network, "value") else project.network
        return cls(
            uuid=project.uuid,
            network=network,
            balance=project.balance,
            agent_config=dict(project.agent_config or {}),
            requires_funding=bool(project.requires_funding),
            funding_key=project.funding_key,
            frontend_custom_domain=project.frontend_custom_domain,
            agent_custom_domain=project.agent_custom_domain,
        )

    @property
    def suspended(self) -> bool:
        return self.balance < 0

class Images(NamedTuple):
    agent_image: str
    frontend_image: Optional[str] = None

class Topology(NamedTuple):
    release_name: str
    namespace: str
    documents: List[Dict[str, Any]]

    def canonical_json(self) -> str:
        return canonical_json(self.documents)

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()

    def kinds(self) -> List[str]:
        return [doc["kind"] for doc in self.documents]

    def find(self, kind: str) -> List[Dict[str, Any]]:
        return [doc for doc in self.documents if doc["kind"] == kind]

def _serialize(obj) -> Dict[str, Any]:
    return _serializer.sanitize_for_serialization(obj)

def _check_hostname(host: str) -> str:
    host = host.strip().lower()
    if not HOSTNAME_PATTERN.match(host):
        raise InvalidDomain(f"Invalid hostname: {host!r}")
    return host

# ==============================================================================
# 容器与 Pod
# ==============================================================================

def build_env(spec: ServiceSpec, tenant: TenantState) -> List[client.V1EnvVar]:
    # manifest env 为基础 <- links <- 项目 agent_config (后者覆盖前者)
    merged: Dict[str, str] = {}
    merged.update(spec.env)
    merged.update(spec.links_env)
    merged.update({k: str(v) for k, v in (tenant.agent_config or {}).items()})
    if tenant.requires_funding and tenant.funding_key:
        merged["SERVER_PRIVATE_KEY"] = tenant.funding_key
        merged["NETWORK"] = tenant.network
    for name in merged:
        if not ENV_NAME_PATTERN.match(name):
            raise ManifestInvalid(f"Invalid environment variable name: {name!r}")
    return [client.V1EnvVar(name=name, value=value) for name, value in merged.items()]

def build_resources(spec: ServiceSpec) -> client.V1ResourceRequirements:
    resources = spec.resources
    if resources is None:
        return client.V1ResourceRequirements(requests={"cpu": "100m"})
    requests = {"cpu": resources.cpu or "100m", "memory": resources.memory or "128Mi"}
    limits = {"cpu": resources.cpu or "1000m", "memory": resources.memory or "512Mi"}
    if resources.gpu_count:
        requests[GPU_RESOURCE] = str(resources.gpu_count)
        limits[GPU_RESOURCE] = str(resources.gpu_count)
    return client.V1ResourceRequirements(requests=requests, limits=limits)

def build_probe(spec: ServiceSpec, initial_delay: int) -> Optional[client.V1Probe]:
    health = spec.health_check
    if health is None:
        return None
    return client.V1Probe(
        http_get=client.V1HTTPGetAction(path=health.path, port=health.port or spec.primary_port),
        initial_delay_seconds=initial_delay,
        period_seconds=health.interval_seconds,
    )

def build_agent_container(spec: ServiceSpec, tenant: TenantState, image: str) -> client.V1Container:
    volume_mounts = None
    if spec.storage_enabled:
        volume_mounts = [client.V1VolumeMount(name="agent-data", mount_path=spec.storage.mount_path or "/data")]
    return client.V1Container(
        name="agent",
        image=image,
        env=build_env(spec, tenant),
        ports=[client.V1ContainerPort(container_port=p) for p in spec.ports],
        liveness_probe=build_probe(spec, initial_delay=15),
        readiness_probe=build_probe(spec, initial_delay=5),
        resources=build_resources(spec),
        volume_mounts=volume_mounts,
    )

def build_frontend_container(image: str) -> client.V1Container:
    return client.V1Container(
        name="frontend",
        image=image,
        ports=[client.V1ContainerPort(container_port=FRONTEND_PORT)],
        resources=client.V1ResourceRequirements(requests={"cpu": "100m"}),
    )

def build_workload(spec: ServiceSpec, tenant: TenantState, images: Images, release: str) -> Dict[str, Any]:
    labels = {"app": release}
    containers = [build_agent_container(spec, tenant, images.agent_image)]
    if spec.frontend and images.frontend_image:
        containers.append(build_frontend_container(images.frontend_image))

    volumes = None
    if spec.storage_enabled:
        volumes = [client.V1Volume(
            name="agent-data",
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(claim_name=naming.agent_pvc_name(release)),
        )]

    runtime_class_name = None
    tolerations = None
    if spec.gpu_count:
        runtime_class_name = "nvidia"
        tolerations = [client.V1Toleration(key=GPU_RESOURCE, operator="Exists", effect="NoSchedule")]

    # replicas 不写入: 副本数由 HPA 管理，server-side apply 不应把它重置
    deployment = client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=naming.deployment_name(release), labels=labels),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(
                    containers=containers,
                    volumes=volumes,
                    runtime_class_name=runtime_class_name,
                    tolerations=tolerations,
                ),
            ),
        ),
    )
    return _serialize(deployment)

def build_autoscaler(spec: ServiceSpec, release: str) -> Dict[str, Any]:
    # GPU 不可超售: 请求 GPU 时固定为 1 个副本
    max_replicas = 1 if spec.gpu_count else 10
    hpa = client.V2HorizontalPodAutoscaler(
        api_version="autoscaling/v2",
        kind="HorizontalPodAutoscaler",
        metadata=client.V1ObjectMeta(name=naming.autoscaler_name(release), labels={"app": release}),
        spec=client.V2HorizontalPodAutoscalerSpec(
            scale_target_ref=client.V2CrossVersionObjectReference(
                api_version="apps/v1", kind="Deployment", name=naming.deployment_name(release)
            ),
            min_replicas=1,
            max_replicas=max_replicas,
            metrics=[client.V2MetricSpec(
                type="Resource",
                resource=client.V2ResourceMetricSource(
                    name="cpu",
                    target=client.V2MetricTarget(type="Utilization", average_utilization=50),
                ),
            )],
        ),
    )
    return _serialize(hpa)

def build_service(spec: ServiceSpec, images: Images, release: str) -> Dict[str, Any]:
    ports = [
        client.V1ServicePort(name="agent" if i == 0 else f"agent-{i}", port=p, target_port=p, protocol="TCP")
        for i, p in enumerate(spec.ports)
    ]
    if spec.frontend and images.frontend_image:
        ports.append(client.V1ServicePort(name="frontend", port=FRONTEND_PORT, target_port=FRONTEND_PORT, protocol="TCP"))
    service = client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=naming.service_name(release), labels={"app": release}),
        spec=client.V1ServiceSpec(cluster_ip="None", selector={"app": release}, ports=ports),
    )
    return _serialize(service)

# ==============================================================================
# Ingress
# ==============================================================================

def ingress_hosts(spec: ServiceSpec, tenant: TenantState, domain: str) -> Dict[str, List[str]]:
    frontend_hosts: List[str] = []
    if spec.frontend:
        frontend_hosts.append(naming.frontend_host(tenant.uuid, domain))
        if tenant.frontend_custom_domain:
            custom = _check_hostname(tenant.frontend_custom_domain)
            frontend_hosts += [custom, f"www.{custom}"]
    agent_hosts = [naming.agent_host(tenant.uuid, domain)]
    if tenant.agent_custom_domain:
        agent_hosts.append(_check_hostname(tenant.agent_custom_domain))
    return {
        "frontend": [_check_hostname(h) for h in frontend_hosts],
        "agent": [_check_hostname(h) for h in agent_hosts],
    }

def _rule(host: str, service: str, port: int) -> client.V1IngressRule:
    return client.V1IngressRule(
        host=host,
        http=client.V1HTTPIngressRuleValue(paths=[client.V1HTTPIngressPath(
            path="/",
            path_type="Prefix",
            backend=client.V1IngressBackend(service=client.V1IngressServiceBackend(
                name=service, port=client.V1ServiceBackendPort(number=port)
            )),
        )]),
    )

def build_ingress(spec: ServiceSpec, tenant: TenantState, release: str, settings=default_settings) -> Dict[str, Any]:
    hosts = ingress_hosts(spec, tenant, settings.PROJECT_DEPLOYMENT_DNS_NAME)
    service = naming.service_name(release)
    rules = [_rule(h, service, FRONTEND_PORT) for h in hosts["frontend"]]
    rules += [_rule(h, service, spec.primary_port) for h in hosts["agent"]]
    ingress = client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=client.V1ObjectMeta(
            name=naming.ingress_name(release),
            labels={"app": release, "created-by": "mandala"},
            annotations={"cert-manager.io/cluster-issuer": settings.CERT_CLUSTER_ISSUER},
        ),
        spec=client.V1IngressSpec(
            ingress_class_name=settings.INGRESS_CLASS_NAME,
            tls=[client.V1IngressTLS(
                hosts=hosts["frontend"] + hosts["agent"],
                secret_name=naming.tls_secret_name(tenant.uuid),
            )],
            rules=rules,
        ),
    )
    return _serialize(ingress)

# ==============================================================================
# 条件资源
# ==============================================================================

def build_agent_pvc(spec: ServiceSpec, release: str, settings=default_settings) -> Dict[str, Any]:
    pvc = client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=client.V1ObjectMeta(name=naming.agent_pvc_name(release), labels={"app": release}),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteOnce"],
            resources=client.V1VolumeResourceRequirements(
                requests={"storage": spec.storage.size or settings.AGENT_STORAGE_SIZE}
            ),
        ),
    )
    return _serialize(pvc)

def _headless_service(name: str, port: int) -> Dict[str, Any]:
    service = client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=name, labels={"app": name}),
        spec=client.V1ServiceSpec(
            cluster_ip="None",
            selector={"app": name},
            ports=[client.V1ServicePort(name=name, port=port, target_port=port, protocol="TCP")],
        ),
    )
    return _serialize(service)

def _stateful_database(
    name: str, image: str, port: int, env: Dict[str, str], data_path: str, size: str
) -> Dict[str, Any]:
    labels = {"app": name}
    volume = f"{name}-data"
    statefulset = client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=client.V1ObjectMeta(name=name, labels=labels),
        spec=client.V1StatefulSetSpec(
            service_name=name,
            replicas=1,
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(
                    containers=[client.V1Container(
                        name=name,
                        image=image,
                        env=[client.V1EnvVar(name=k, value=v) for k, v in env.items()],
                        ports=[client.V1ContainerPort(container_port=port)],
                        volume_mounts=[client.V1VolumeMount(name=volume, mount_path=data_path)],
                    )],
                    security_context=client.V1PodSecurityContext(fs_group=999, fs_group_change_policy="OnRootMismatch"),
                ),
            ),
            volume_claim_templates=[client.V1PersistentVolumeClaim(
                metadata=client.V1ObjectMeta(name=volume),
                spec=client.V1PersistentVolumeClaimSpec(
                    access_modes=["ReadWriteOnce"],
                    resources=client.V1VolumeResourceRequirements(requests={"storage": size}),
                ),
            )],
        ),
    )
    return _serialize(statefulset)

def build_mysql(settings=default_settings) -> List[Dict[str, Any]]:
    env = {
        "MYSQL_ROOT_PASSWORD": settings.TENANT_MYSQL_ROOT_PASSWORD,
        "MYSQL_DATABASE": settings.TENANT_MYSQL_DATABASE,
        "MYSQL_USER": settings.TENANT_MYSQL_USER,
        "MYSQL_PASSWORD": settings.TENANT_MYSQL_PASSWORD,
        "MYSQL_EXTRA_FLAGS": "--innodb_use_native_aio=0",
    }
    return [
        _stateful_database("mysql", "mysql:8.0", 3306, env, "/var/lib/mysql", settings.MYSQL_STORAGE_SIZE),
        _headless_service("mysql", 3306),
    ]

def build_mongo(settings=default_settings) -> List[Dict[str, Any]]:
    env = {
        "MONGO_INITDB_ROOT_USERNAME": settings.TENANT_MONGO_ROOT_USERNAME,
        "MONGO_INITDB_ROOT_PASSWORD": settings.TENANT_MONGO_ROOT_PASSWORD,
    }
    return [
        _stateful_database("mongo", "mongo:6.0", 27017, env, "/data/db", settings.MONGO_STORAGE_SIZE),
        _headless_service("mongo", 27017),
    ]

def build_redis() -> List[Dict[str, Any]]:
    labels = {"app": "redis"}
    deployment = client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name="redis", labels=labels),
        spec=client.V1DeploymentSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(containers=[client.V1Container(
                    name="redis",
                    image="redis:7-alpine",
                    ports=[client.V1ContainerPort(container_port=6379)],
                )]),
            ),
        ),
    )
    return [_serialize(deployment), _headless_service("redis", 6379)]

# ==============================================================================
# 入口
# ==============================================================================

def compile_topology(
    spec: ServiceSpec,
    tenant: TenantState,
    node: NodeCapability,
    images: Images,
    settings=default_settings,
) -> Topology:
    """
    生成租户的完整资源集合。
    未使用的资源类型 (数据库、agent PVC) 完全省略；租户余额为负时不生成 Ingress。
    """
    if spec.gpu_count and not node.gpu_enabled:
        raise UnsupportedResource("This node does not support GPU workloads.")

    release = naming.release_name_for(tenant.uuid)
    documents: List[Dict[str, Any]] = []

    if spec.storage_enabled:
        documents.append(build_agent_pvc(spec, release, settings))
    if spec.databases.mysql:
        documents += build_mysql(settings)
    if spec.databases.mongo:
        documents += build_mongo(settings)
    if spec.databases.redis:
        documents += build_redis()

    documents.append(build_workload(spec, tenant, images, release))
    documents.append(build_service(spec, images, release))
    documents.append(build_autoscaler(spec, release))
    if not tenant.suspended:
        documents.append(build_ingress(spec, tenant, release, settings))

    return Topology(release_name=release, namespace=naming.namespace_for(tenant.uuid), documents=documents)

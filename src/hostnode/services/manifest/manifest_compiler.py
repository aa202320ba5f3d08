# src/hostnode/services/manifest/manifest_compiler.py

import logging
from typing import Any, Dict, List, Optional
from pydantic import ValidationError
from hostnode.core.config import settings
from hostnode.schemas.manifest.manifest_schemas import (
    ManifestV1, ManifestV2, ServiceDefinition, ServiceLink, DatabaseFlags, DeploymentTarget, NodeCapability, ServiceSpec
)
from hostnode.services.exceptions import (
    SchemaMismatch, MissingServiceSelector, UnknownService, UnsupportedResource,
    NoMatchingTarget, NetworkMismatch, ManifestInvalid
)

logger = logging.getLogger(__name__)

SCHEMA_MARKER = "mandala-agent"
PROVIDER = "mandala"
DEFAULT_PORTS = [8080]
IDENTITY_AGENT_PORTS = [3000]

def is_multi_service(raw: Dict[str, Any]) -> bool:
    return raw.get("schemaVersion") == "2.0" and raw.get("services") is not None

def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for error in e.errors():
        location = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return "; ".join(parts)

class ManifestCompiler:
    """
    把原始 manifest 文档编译为规范化的 ServiceSpec。
    所有错误都是终态的 DeployValidationError，在任何构建步骤之前抛出。
    """

    def __init__(self, node: Optional[NodeCapability] = None, domain: Optional[str] = None):
        self.node = node or NodeCapability.from_settings(settings)
        self.domain = domain or settings.PROJECT_DEPLOYMENT_DNS_NAME

    def compile(
        self,
        raw: Any,
        project_uuid: str,
        network: str,
        service_name: Optional[str] = None
    ) -> ServiceSpec:
        if not isinstance(raw, dict):
            raise ManifestInvalid("agent-manifest.json must contain a JSON object.")
        if raw.get("schema") != SCHEMA_MARKER:
            raise SchemaMismatch(f'Invalid schema in agent-manifest.json (expected "{SCHEMA_MARKER}")')

        links: List[ServiceLink] = []
        if is_multi_service(raw):
            service, deployments, links = self._select_service(raw, service_name)
        else:
            try:
                service = ManifestV1.model_validate(raw)
            except ValidationError as e:
                raise ManifestInvalid(f"Invalid agent-manifest.json: {_format_validation_error(e)}") from e
            deployments = service.deployments
            service_name = None

        self._check_resources(service)
        target = self._match_target(deployments, project_uuid, network)

        ports = service.ports or (IDENTITY_AGENT_PORTS if service.agent.type == "agidentity" else DEFAULT_PORTS)
        return ServiceSpec(
            service_name=service_name,
            agent=service.agent,
            env=dict(service.env or {}),
            links_env=self._resolve_links(links, service_name, deployments),
            resources=service.resources,
            ports=list(ports),
            health_check=service.health_check,
            frontend=service.frontend,
            storage=service.storage,
            databases=service.databases or DatabaseFlags(),
            target=target,
        )

    def _select_service(self, raw: Dict[str, Any], service_name: Optional[str]):
        # 选择器检查先于结构校验：多服务 manifest 缺少选择器时直接失败
        if not service_name:
            raise MissingServiceSelector(
                "v2 manifest requires serviceName param identifying which service to deploy"
            )
        services = raw.get("services")
        if not isinstance(services, dict) or service_name not in services:
            raise UnknownService(f"Service '{service_name}' is not declared in agent-manifest.json")
        try:
            manifest = ManifestV2.model_validate(raw)
        except ValidationError as e:
            raise ManifestInvalid(f"Invalid agent-manifest.json: {_format_validation_error(e)}") from e

        selected: ServiceDefinition = manifest.services[service_name]
        # 文档级 env 为基础，服务级 env 覆盖
        merged = selected.model_copy(update={"env": {**(manifest.env or {}), **(selected.env or {})}})
        logger.info(f"v2 manifest detected, deploying service: {service_name}")
        return merged, manifest.deployments, manifest.links

    def _check_resources(self, service: ServiceDefinition) -> None:
        resources = service.resources
        if resources is None:
            return
        if resources.gpu_count > 0 and not self.node.gpu_enabled:
            raise UnsupportedResource("This node does not support GPU workloads.")
        if (resources.tee or resources.tee_inference_proxy) and not self.node.tee_enabled:
            raise UnsupportedResource("This node does not support TEE workloads.")

    def _match_target(self, deployments: List[DeploymentTarget], project_uuid: str, network: str) -> DeploymentTarget:
        candidates = [d for d in deployments if d.provider == PROVIDER and d.project_id == project_uuid]
        if not candidates:
            raise NoMatchingTarget("No matching Mandala deployment config or projectID in agent-manifest.json")
        for candidate in candidates:
            if not candidate.network or candidate.network == network:
                return candidate
        raise NetworkMismatch(
            f"Network mismatch: Project is on {network} but deployment config specifies {candidates[0].network}"
        )

    def _resolve_links(
        self,
        links: List[ServiceLink],
        service_name: Optional[str],
        deployments: List[DeploymentTarget]
    ) -> Dict[str, str]:
        resolved: Dict[str, str] = {}
        for link in links:
            if link.from_ != service_name:
                continue
            peer = next((d for d in deployments if d.name == link.to and d.project_id), None)
            if peer is None:
                logger.warning(f"Link {link.from_} -> {link.to} has no deployment target with a projectID; dropped.")
                continue
            resolved[link.env_var] = f"https://agent.{peer.project_id}.{self.domain}"
        return resolved

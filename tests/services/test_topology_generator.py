# tests/services/test_topology_generator.py

import pytest
from hostnode.schemas.manifest.manifest_schemas import NodeCapability
from hostnode.services.manifest.manifest_compiler import ManifestCompiler
from hostnode.services.topology.topology_generator import TenantState, Images, compile_topology
from hostnode.services.topology import naming
from hostnode.services.exceptions import UnsupportedResource, InvalidDomain
from tests.conftest import v1_manifest, PROJECT_UUID

CPU_NODE = NodeCapability()
GPU_NODE = NodeCapability(gpu_enabled=True, gpu_type="a100")
IMAGES = Images(agent_image="registry/agent:1")

def compile_spec(node: NodeCapability = CPU_NODE, **overrides):
    return ManifestCompiler(node=node, domain="example.com").compile(v1_manifest(**overrides), PROJECT_UUID, "mainnet")

def tenant(**fields) -> TenantState:
    base = {"uuid": PROJECT_UUID, "network": "mainnet", "balance": 100}
    base.update(fields)
    return TenantState(**base)

def agent_container(topology):
    workload = next(d for d in topology.find("Deployment") if d["metadata"]["name"].endswith("-deployment"))
    return workload["spec"]["template"]["spec"]["containers"][0]

def test_minimal_manifest_produces_exactly_four_documents():
    topology = compile_topology(compile_spec(), tenant(), CPU_NODE, IMAGES)
    assert sorted(topology.kinds()) == sorted(["Deployment", "Service", "HorizontalPodAutoscaler", "Ingress"])
    assert topology.namespace == naming.namespace_for(PROJECT_UUID)

def test_generation_is_deterministic():
    spec = compile_spec(env={"B": "2", "A": "1"})
    first = compile_topology(spec, tenant(agent_config={"Z": "z"}), CPU_NODE, IMAGES)
    second = compile_topology(spec, tenant(agent_config={"Z": "z"}), CPU_NODE, IMAGES)
    assert first.canonical_json() == second.canonical_json()
    assert first.digest == second.digest

def test_tenant_without_agent_config_keeps_manifest_env():
    state = tenant()
    assert state.agent_config is None
    topology = compile_topology(compile_spec(env={"MODE": "manifest"}), state, CPU_NODE, IMAGES)
    env = {e["name"]: e["value"] for e in agent_container(topology)["env"]}
    assert env["MODE"] == "manifest"

async def test_agent_config_is_copied_per_tenant(project):
    first = TenantState.from_project(project)
    first.agent_config["LEAK"] = "x"
    assert "LEAK" not in TenantState.from_project(project).agent_config
    assert "LEAK" not in (tenant().agent_config or {})

def test_ports_and_probes_follow_manifest():
    spec = compile_spec(ports=[9000, 9001], healthCheck={"path": "/ready", "intervalSeconds": 12})
    container = agent_container(compile_topology(spec, tenant(), CPU_NODE, IMAGES))
    assert [p["containerPort"] for p in container["ports"]] == [9000, 9001]
    for probe in (container["livenessProbe"], container["readinessProbe"]):
        assert probe["httpGet"] == {"path": "/ready", "port": 9000}
        assert probe["periodSeconds"] == 12

def test_workload_leaves_replicas_to_autoscaler():
    topology = compile_topology(compile_spec(), tenant(), CPU_NODE, IMAGES)
    assert "replicas" not in topology.find("Deployment")[0]["spec"]
    hpa = topology.find("HorizontalPodAutoscaler")[0]
    assert hpa["spec"]["maxReplicas"] == 10
    assert hpa["spec"]["scaleTargetRef"]["name"] == topology.find("Deployment")[0]["metadata"]["name"]

def test_gpu_workload_is_pinned_to_single_replica():
    spec = compile_spec(node=GPU_NODE, resources={"gpu": 1})
    topology = compile_topology(spec, tenant(), GPU_NODE, IMAGES)
    assert topology.find("HorizontalPodAutoscaler")[0]["spec"]["maxReplicas"] == 1
    container = agent_container(topology)
    assert container["resources"]["limits"]["nvidia.com/gpu"] == "1"
    assert topology.find("Deployment")[0]["spec"]["template"]["spec"]["runtimeClassName"] == "nvidia"

def test_gpu_request_on_cpu_node_is_rejected():
    spec = compile_spec(node=GPU_NODE, resources={"gpu": 1})
    with pytest.raises(UnsupportedResource):
        compile_topology(spec, tenant(), CPU_NODE, IMAGES)

def test_databases_and_storage_are_added_only_when_requested():
    spec = compile_spec(
        databases={"mysql": True, "mongo": True, "redis": True},
        storage={"enabled": True, "size": "5Gi"},
    )
    topology = compile_topology(spec, tenant(), CPU_NODE, IMAGES)
    assert {d["metadata"]["name"] for d in topology.find("StatefulSet")} == {"mysql", "mongo"}
    pvc = topology.find("PersistentVolumeClaim")[0]
    assert pvc["spec"]["resources"]["requests"]["storage"] == "5Gi"
    service_names = {d["metadata"]["name"] for d in topology.find("Service")}
    assert {"mysql", "mongo", "redis"} <= service_names
    mount = agent_container(topology)["volumeMounts"][0]
    assert mount["mountPath"] == "/data"

def test_env_precedence_and_funding_key():
    spec = compile_spec(env={"MODE": "manifest", "KEEP": "yes"})
    state = tenant(agent_config={"MODE": "project"}, requires_funding=True, funding_key="f" * 64)
    env = {e["name"]: e["value"] for e in agent_container(compile_topology(spec, state, CPU_NODE, IMAGES))["env"]}
    assert env["MODE"] == "project"
    assert env["KEEP"] == "yes"
    assert env["SERVER_PRIVATE_KEY"] == "f" * 64
    assert env["NETWORK"] == "mainnet"

def test_suspended_tenant_has_no_ingress():
    topology = compile_topology(compile_spec(), tenant(balance=-1), CPU_NODE, IMAGES)
    assert topology.find("Ingress") == []

def test_ingress_hosts_include_custom_domains():
    spec = compile_spec(frontend={"directory": "web"})
    state = tenant(frontend_custom_domain="Shop.Example.org", agent_custom_domain="api.example.org")
    images = Images(agent_image="registry/agent:1", frontend_image="registry/frontend:1")
    ingress = compile_topology(spec, state, CPU_NODE, images).find("Ingress")[0]
    hosts = [rule["host"] for rule in ingress["spec"]["rules"]]
    assert hosts == [
        naming.frontend_host(PROJECT_UUID),
        "shop.example.org",
        "www.shop.example.org",
        naming.agent_host(PROJECT_UUID),
        "api.example.org",
    ]
    assert ingress["spec"]["tls"][0]["secretName"] == naming.tls_secret_name(PROJECT_UUID)

def test_invalid_custom_domain_is_rejected():
    with pytest.raises(InvalidDomain):
        compile_topology(compile_spec(), tenant(agent_custom_domain="not a host"), CPU_NODE, IMAGES)

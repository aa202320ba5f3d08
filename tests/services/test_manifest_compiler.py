# tests/services/test_manifest_compiler.py

import pytest
from hostnode.schemas.manifest.manifest_schemas import NodeCapability
from hostnode.services.manifest.manifest_compiler import ManifestCompiler
from hostnode.services.exceptions import (
    SchemaMismatch, MissingServiceSelector, UnknownService, UnsupportedResource,
    NoMatchingTarget, NetworkMismatch, ManifestInvalid
)
from tests.conftest import v1_manifest, PROJECT_UUID

PEER_UUID = "fedcba9876543210fedcba9876543210"

@pytest.fixture
def compiler() -> ManifestCompiler:
    return ManifestCompiler(node=NodeCapability(), domain="example.com")

def v2_manifest():
    return {
        "schema": "mandala-agent",
        "schemaVersion": "2.0",
        "env": {"SHARED": "doc", "LOG_LEVEL": "info"},
        "services": {
            "api": {"agent": {"type": "custom", "runtime": "python"}, "env": {"LOG_LEVEL": "debug"}},
            "worker": {"agent": {"type": "openclaw", "image": "ghcr.io/acme/worker:1"}},
        },
        "links": [{"from": "api", "to": "worker", "envVar": "WORKER_URL"}],
        "deployments": [
            {"name": "api", "provider": "mandala", "projectID": PROJECT_UUID, "network": "mainnet"},
            {"name": "worker", "provider": "mandala", "projectID": PEER_UUID},
        ],
    }

def test_v1_defaults(compiler):
    manifest = v1_manifest()
    del manifest["ports"]
    spec = compiler.compile(manifest, PROJECT_UUID, "mainnet")
    assert spec.ports == [8080]
    assert spec.service_name is None
    assert spec.databases.mysql is False
    assert spec.target.project_id == PROJECT_UUID

def test_identity_agent_defaults_to_port_3000(compiler):
    manifest = v1_manifest(agent={"type": "agidentity"})
    del manifest["ports"]
    assert compiler.compile(manifest, PROJECT_UUID, "mainnet").ports == [3000]

def test_wrong_schema_marker(compiler):
    with pytest.raises(SchemaMismatch):
        compiler.compile(v1_manifest(schema="something-else"), PROJECT_UUID, "mainnet")

def test_non_object_manifest(compiler):
    with pytest.raises(ManifestInvalid):
        compiler.compile(["not", "an", "object"], PROJECT_UUID, "mainnet")

def test_invalid_env_name_is_rejected(compiler):
    with pytest.raises(ManifestInvalid):
        compiler.compile(v1_manifest(env={"1BAD": "x"}), PROJECT_UUID, "mainnet")

def test_scalar_env_values_are_stringified(compiler):
    spec = compiler.compile(v1_manifest(env={"PORT": 8080, "DEBUG": True, "RATIO": 0.5, "NAME": "x"}), PROJECT_UUID, "mainnet")
    assert spec.env == {"PORT": "8080", "DEBUG": "true", "RATIO": "0.5", "NAME": "x"}

def test_v2_document_env_values_are_stringified(compiler):
    manifest = v2_manifest()
    manifest["env"]["RETRIES"] = 3
    manifest["services"]["api"]["env"]["VERBOSE"] = False
    spec = compiler.compile(manifest, PROJECT_UUID, "mainnet", service_name="api")
    assert spec.env["RETRIES"] == "3"
    assert spec.env["VERBOSE"] == "false"

def test_structured_env_value_is_rejected(compiler):
    with pytest.raises(ManifestInvalid):
        compiler.compile(v1_manifest(env={"NESTED": {"a": 1}}), PROJECT_UUID, "mainnet")

def test_v2_requires_selector_before_anything_else(compiler):
    manifest = v2_manifest()
    manifest["services"]["api"]["resources"] = {"gpu": 1}
    with pytest.raises(MissingServiceSelector):
        compiler.compile(manifest, PROJECT_UUID, "mainnet")

def test_v2_unknown_service(compiler):
    with pytest.raises(UnknownService):
        compiler.compile(v2_manifest(), PROJECT_UUID, "mainnet", service_name="missing")

def test_v2_selects_service_merges_env_and_resolves_links(compiler):
    spec = compiler.compile(v2_manifest(), PROJECT_UUID, "mainnet", service_name="api")
    assert spec.service_name == "api"
    assert spec.agent.runtime == "python"
    # 服务级 env 覆盖文档级 env
    assert spec.env == {"SHARED": "doc", "LOG_LEVEL": "debug"}
    assert spec.links_env == {"WORKER_URL": f"https://agent.{PEER_UUID}.example.com"}

def test_gpu_request_on_non_gpu_node(compiler):
    manifest = v1_manifest(resources={"gpu": 1})
    with pytest.raises(UnsupportedResource):
        compiler.compile(manifest, PROJECT_UUID, "mainnet")

def test_gpu_request_on_gpu_node():
    compiler = ManifestCompiler(node=NodeCapability(gpu_enabled=True, gpu_type="a100"), domain="example.com")
    spec = compiler.compile(v1_manifest(resources={"gpu": 1}), PROJECT_UUID, "mainnet")
    assert spec.gpu_count == 1

def test_tee_request_on_non_tee_node(compiler):
    with pytest.raises(UnsupportedResource):
        compiler.compile(v1_manifest(resources={"tee": True}), PROJECT_UUID, "mainnet")

def test_no_matching_target(compiler):
    with pytest.raises(NoMatchingTarget):
        compiler.compile(v1_manifest(project_uuid="someoneelse"), PROJECT_UUID, "mainnet")

def test_network_mismatch(compiler):
    with pytest.raises(NetworkMismatch):
        compiler.compile(v1_manifest(), PROJECT_UUID, "testnet")

def test_target_without_network_matches_any(compiler):
    manifest = v1_manifest(deployments=[{"provider": "mandala", "projectID": PROJECT_UUID}])
    assert compiler.compile(manifest, PROJECT_UUID, "testnet").target.network is None

# tests/services/test_build_pipeline.py

import io
import os
import tarfile
import pytest
from unittest.mock import AsyncMock
from hostnode.engine.builder.base import BaseImageBuilder, ImageBuildError
from hostnode.schemas.manifest.manifest_schemas import NodeCapability
from hostnode.services.build import artifact
from hostnode.services.build.build_pipeline import BuildPipeline, bound_output
from hostnode.services.manifest.manifest_compiler import ManifestCompiler
from hostnode.services.exceptions import ArtifactInvalid, ManifestInvalid, InfrastructureError
from tests.conftest import v1_manifest, make_artifact, PROJECT_UUID

DEPLOYMENT_UUID = "d" * 32
NAMESPACE = "mandala-project-" + PROJECT_UUID

@pytest.fixture
def builder() -> AsyncMock:
    builder = AsyncMock(spec=BaseImageBuilder)
    builder.build.return_value = "built"
    builder.push.return_value = "pushed"
    return builder

@pytest.fixture
def pipeline(builder) -> BuildPipeline:
    return BuildPipeline(builder, registry="registry.local:5000")

def unpack(files) -> str:
    archive = artifact.save_archive(DEPLOYMENT_UUID, make_artifact(files))
    return artifact.extract_archive(archive, artifact.source_dir(DEPLOYMENT_UUID))

def compile_spec(**overrides):
    return ManifestCompiler(node=NodeCapability(), domain="example.com").compile(
        v1_manifest(**overrides), PROJECT_UUID, "mainnet"
    )

# --- artifact ---

def test_extract_and_load_manifest():
    root = unpack({"agent-manifest.json": v1_manifest(), "index.js": "console.log(1)"})
    assert artifact.load_manifest(root)["schema"] == "mandala-agent"
    assert os.path.isfile(os.path.join(root, "index.js"))

def test_missing_manifest():
    root = unpack({"index.js": "console.log(1)"})
    with pytest.raises(ArtifactInvalid):
        artifact.load_manifest(root)

def test_manifest_that_is_not_json():
    root = unpack({"agent-manifest.json": "{not json"})
    with pytest.raises(ManifestInvalid):
        artifact.load_manifest(root)

def test_empty_upload_is_rejected():
    with pytest.raises(ArtifactInvalid):
        artifact.save_archive(DEPLOYMENT_UUID, b"")

def test_oversized_upload_is_rejected(monkeypatch):
    monkeypatch.setattr(artifact.settings, "MAX_ARTIFACT_SIZE_BYTES", 10)
    with pytest.raises(ArtifactInvalid):
        artifact.save_archive(DEPLOYMENT_UUID, b"x" * 11)

def test_not_a_tarball():
    archive = artifact.save_archive(DEPLOYMENT_UUID, b"plain bytes")
    with pytest.raises(ArtifactInvalid):
        artifact.extract_archive(archive, artifact.source_dir(DEPLOYMENT_UUID))

def test_symlinks_are_rejected():
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        link = tarfile.TarInfo(name="passwd")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        tar.addfile(link)
    archive = artifact.save_archive(DEPLOYMENT_UUID, buffer.getvalue())
    with pytest.raises(ArtifactInvalid):
        artifact.extract_archive(archive, artifact.source_dir(DEPLOYMENT_UUID))

def test_path_traversal_is_rejected():
    archive = artifact.save_archive(DEPLOYMENT_UUID, make_artifact({"../escape.txt": "x"}))
    with pytest.raises(ArtifactInvalid):
        artifact.extract_archive(archive, artifact.source_dir(DEPLOYMENT_UUID))

def test_cleanup_removes_staging():
    unpack({"agent-manifest.json": v1_manifest()})
    artifact.cleanup(DEPLOYMENT_UUID)
    assert not os.path.exists(artifact.staging_dir(DEPLOYMENT_UUID))

# --- layout 校验 ---

def test_validate_layout_rejects_missing_dockerfile(pipeline):
    root = unpack({"agent-manifest.json": v1_manifest()})
    spec = compile_spec(agent={"type": "custom", "dockerfile": "docker/Dockerfile"})
    with pytest.raises(ArtifactInvalid):
        pipeline.validate_layout(spec, root)

def test_validate_layout_rejects_escaping_build_context(pipeline):
    root = unpack({"agent-manifest.json": v1_manifest()})
    spec = compile_spec(agent={"type": "custom", "buildContext": "../.."})
    with pytest.raises(ArtifactInvalid):
        pipeline.validate_layout(spec, root)

def test_validate_layout_rejects_missing_frontend_directory(pipeline):
    root = unpack({"agent-manifest.json": v1_manifest()})
    spec = compile_spec(frontend={"directory": "web"})
    with pytest.raises(ArtifactInvalid):
        pipeline.validate_layout(spec, root)

def test_prebuilt_images_skip_layout_checks(pipeline):
    root = unpack({"agent-manifest.json": v1_manifest()})
    spec = compile_spec(agent={"type": "openclaw", "image": "ghcr.io/acme/agent:1"}, frontend={"image": "ghcr.io/acme/web:1"})
    pipeline.validate_layout(spec, root)

# --- 构建 ---

async def test_prebuilt_image_is_used_without_building(pipeline, builder):
    root = unpack({"agent-manifest.json": v1_manifest()})
    spec = compile_spec(agent={"type": "openclaw", "image": "ghcr.io/acme/agent:1"})
    result = await pipeline.run(spec, root, NAMESPACE, DEPLOYMENT_UUID)
    assert result.agent_image == "ghcr.io/acme/agent:1"
    assert result.frontend_image is None
    builder.build.assert_not_awaited()

async def test_runtime_dockerfile_is_synthesized(pipeline, builder):
    root = unpack({"agent-manifest.json": v1_manifest(), "requirements.txt": "", "main.py": ""})
    spec = compile_spec(agent={"type": "custom", "runtime": "python"})
    steps = []

    async def on_step(message):
        steps.append(message)

    result = await pipeline.run(spec, root, NAMESPACE, DEPLOYMENT_UUID, on_step=on_step)
    expected = f"registry.local:5000/{NAMESPACE}/agent:{DEPLOYMENT_UUID}"
    assert result.agent_image == expected
    builder.build.assert_awaited_once_with(os.path.realpath(root), "Dockerfile", expected)
    builder.push.assert_awaited_once_with(expected)
    with open(os.path.join(root, "Dockerfile")) as f:
        dockerfile = f.read()
    assert "python" in dockerfile and "EXPOSE 8080" in dockerfile
    assert steps[0] == "Building agent image..."

async def test_identity_agent_template_copies_optional_dirs(pipeline):
    root = unpack({
        "agent-manifest.json": v1_manifest(),
        "package.json": "{}",
        "src/start.ts": "",
        "mpc/key.json": "{}",
    })
    spec = compile_spec(agent={"type": "agidentity"})
    await pipeline.run(spec, root, NAMESPACE, DEPLOYMENT_UUID)
    with open(os.path.join(root, "Dockerfile")) as f:
        dockerfile = f.read()
    assert "COPY mpc/ ./mpc/" in dockerfile
    assert "workspace/" not in dockerfile

async def test_frontend_is_built_with_static_server(pipeline, builder):
    root = unpack({"agent-manifest.json": v1_manifest(), "index.js": "", "web/index.html": "<html/>"})
    spec = compile_spec(frontend={"directory": "web"})
    result = await pipeline.run(spec, root, NAMESPACE, DEPLOYMENT_UUID)
    assert result.frontend_image.endswith(f"/{NAMESPACE}/frontend:{DEPLOYMENT_UUID}")
    assert builder.build.await_count == 2
    assert os.path.isfile(os.path.join(root, "web", "nginx.conf"))

async def test_build_failure_becomes_infrastructure_error(pipeline, builder):
    root = unpack({"agent-manifest.json": v1_manifest(), "index.js": ""})
    builder.build.side_effect = ImageBuildError("exit code 1", output="npm ERR! missing script")
    with pytest.raises(InfrastructureError) as exc_info:
        await pipeline.run(compile_spec(), root, NAMESPACE, DEPLOYMENT_UUID)
    assert "npm ERR!" in exc_info.value.diagnostics
    builder.push.assert_not_awaited()

def test_bound_output_keeps_tail():
    bounded = bound_output("a" * 10 + "END", limit=5)
    assert bounded.endswith("aaEND")
    assert bounded.startswith("...(truncated)")

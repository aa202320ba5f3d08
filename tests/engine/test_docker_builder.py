# tests/engine/test_docker_builder.py

import pytest
from unittest.mock import MagicMock
from docker.errors import APIError
from hostnode.engine.builder.base import ImageBuildError
from hostnode.engine.builder.docker_builder import DockerImageBuilder, split_tag

TAG = "registry:5000/mandala-project-abc/agent:0123"

@pytest.mark.parametrize("image, expected", [
    (TAG, ("registry:5000/mandala-project-abc/agent", "0123")),
    ("registry:5000/agent", ("registry:5000/agent", None)),
    ("agent", ("agent", None)),
])
def test_split_tag(image, expected):
    assert split_tag(image) == expected

async def test_build_collects_output():
    docker_client = MagicMock()
    docker_client.api.build.return_value = iter([{"stream": "Step 1/3\n"}, {"stream": "Successfully built\n"}])
    output = await DockerImageBuilder(docker_client).build("/ctx", "Dockerfile", TAG)
    assert output == "Step 1/3\nSuccessfully built\n"
    docker_client.api.build.assert_called_once_with(path="/ctx", dockerfile="Dockerfile", tag=TAG, rm=True, decode=True)

async def test_build_error_chunk_raises_with_output():
    docker_client = MagicMock()
    docker_client.api.build.return_value = iter([{"stream": "Step 1/3\n"}, {"error": "npm ERR! missing script"}])
    with pytest.raises(ImageBuildError) as exc_info:
        await DockerImageBuilder(docker_client).build("/ctx", "Dockerfile", TAG)
    assert "npm ERR!" in exc_info.value.output

async def test_push_splits_repository_and_tag():
    docker_client = MagicMock()
    docker_client.api.push.return_value = iter([{"status": "Pushed"}])
    await DockerImageBuilder(docker_client).push(TAG)
    docker_client.api.push.assert_called_once_with(
        "registry:5000/mandala-project-abc/agent", tag="0123", stream=True, decode=True
    )

async def test_daemon_error_becomes_build_error():
    docker_client = MagicMock()
    docker_client.api.push.side_effect = APIError("daemon unreachable")
    with pytest.raises(ImageBuildError):
        await DockerImageBuilder(docker_client).push(TAG)

# src/hostnode/engine/builder/docker_builder.py

import asyncio
import logging
from typing import List, Optional
import docker
from docker.errors import DockerException
from hostnode.core.config import settings
from .base import BaseImageBuilder, ImageBuildError, register_image_builder

logger = logging.getLogger(__name__)

def split_tag(image: str) -> tuple[str, Optional[str]]:
    """'registry:5000/ns/agent:abc' -> ('registry:5000/ns/agent', 'abc')"""
    repository, _, tag = image.rpartition(":")
    if not repository or "/" in tag:
        return image, None
    return repository, tag

@register_image_builder
class DockerImageBuilder(BaseImageBuilder):
    """通过 docker SDK 访问本机 docker daemon 进行构建和推送。"""
    name = "docker"

    def __init__(self, docker_client: Optional[docker.DockerClient] = None):
        self._client = docker_client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def _build_sync(self, context_dir: str, dockerfile: str, tag: str) -> str:
        lines: List[str] = []
        try:
            for chunk in self.client.api.build(path=context_dir, dockerfile=dockerfile, tag=tag, rm=True, decode=True):
                if "stream" in chunk:
                    lines.append(chunk["stream"])
                if "error" in chunk:
                    lines.append(chunk["error"])
                    raise ImageBuildError(f"Build of {tag} failed.", "".join(lines))
        except DockerException as e:
            lines.append(str(e))
            raise ImageBuildError(f"Build of {tag} failed.", "".join(lines)) from e
        return "".join(lines)

    def _push_sync(self, tag: str) -> str:
        repository, image_tag = split_tag(tag)
        lines: List[str] = []
        try:
            for chunk in self.client.api.push(repository, tag=image_tag, stream=True, decode=True):
                if "status" in chunk:
                    lines.append(f"{chunk['status']}\n")
                if "error" in chunk:
                    lines.append(chunk["error"])
                    raise ImageBuildError(f"Push of {tag} failed.", "".join(lines))
        except DockerException as e:
            lines.append(str(e))
            raise ImageBuildError(f"Push of {tag} failed.", "".join(lines)) from e
        return "".join(lines)

    async def build(self, context_dir: str, dockerfile: str, tag: str) -> str:
        logger.info(f"Building image {tag} from {context_dir}")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._build_sync, context_dir, dockerfile, tag),
                timeout=settings.BUILD_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError as e:
            raise ImageBuildError(f"Build of {tag} timed out after {settings.BUILD_TIMEOUT_SECONDS}s.") from e

    async def push(self, tag: str) -> str:
        logger.info(f"Pushing image {tag}")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._push_sync, tag),
                timeout=settings.PUSH_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError as e:
            raise ImageBuildError(f"Push of {tag} timed out after {settings.PUSH_TIMEOUT_SECONDS}s.") from e

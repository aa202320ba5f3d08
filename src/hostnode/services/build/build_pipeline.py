# src/hostnode/services/build/build_pipeline.py

import os
import shutil
import logging
from typing import Awaitable, Callable, NamedTuple, Optional, Tuple
from hostnode.core.config import settings
from hostnode.engine.builder.base import BaseImageBuilder, ImageBuildError
from hostnode.schemas.manifest.manifest_schemas import ServiceSpec
from hostnode.services.exceptions import ArtifactInvalid, InfrastructureError
from . import dockerfiles
from .artifact import resolve_inside

logger = logging.getLogger(__name__)

StepCallback = Callable[[str], Awaitable[None]]

class BuildResult(NamedTuple):
    agent_image: str
    frontend_image: Optional[str]

def bound_output(output: str, limit: Optional[int] = None) -> str:
    """构建输出只保留末尾 limit 个字符，错误信息通常在最后。"""
    limit = limit or settings.BUILD_LOG_LIMIT
    if len(output) <= limit:
        return output
    return "...(truncated)\n" + output[-limit:]

class BuildPipeline:
    """
    解析 agent / frontend 镜像来源，必要时合成构建文件、构建并推送。

    Agent 镜像解析顺序:
      1. agent.image         -> 直接使用，不构建
      2. agidentity 类型      -> 专用模板 (mpc/ 与 workspace/ 仅在存在时复制)
      3. agent.dockerfile    -> 用户 Dockerfile，必要时复制到构建上下文
      4. 按 runtime 合成 Dockerfile
    """

    def __init__(self, builder: BaseImageBuilder, registry: Optional[str] = None):
        self.builder = builder
        self.registry = registry or settings.DOCKER_REGISTRY

    def image_tag(self, namespace: str, component: str, deployment_uuid: str) -> str:
        return f"{self.registry}/{namespace}/{component}:{deployment_uuid}"

    # --- 校验 (不写文件，可在接收上传时同步调用) ---

    def validate_layout(self, spec: ServiceSpec, source_dir: str) -> None:
        if not spec.agent.image:
            self._agent_context(spec, source_dir)
            if spec.agent.type != "agidentity" and spec.agent.dockerfile:
                self._user_dockerfile(spec, source_dir)
        if spec.frontend and not spec.frontend.image:
            self._frontend_context(spec, source_dir)

    def _agent_context(self, spec: ServiceSpec, source_dir: str) -> str:
        build_context = spec.agent.build_context or "."
        context_dir = resolve_inside(source_dir, build_context, "Build context directory")
        if not os.path.isdir(context_dir):
            raise ArtifactInvalid(f'Build context directory "{build_context}" not found in artifact.')
        return context_dir

    def _user_dockerfile(self, spec: ServiceSpec, source_dir: str) -> str:
        path = resolve_inside(source_dir, spec.agent.dockerfile, "Dockerfile")
        if not os.path.isfile(path):
            raise ArtifactInvalid(f'Specified Dockerfile "{spec.agent.dockerfile}" not found.')
        return path

    def _frontend_context(self, spec: ServiceSpec, source_dir: str) -> str:
        directory = spec.frontend.directory or "frontend"
        frontend_dir = resolve_inside(source_dir, directory, "Frontend directory")
        if not os.path.isdir(frontend_dir):
            raise ArtifactInvalid("Frontend directory not found but frontend config specified.")
        return frontend_dir

    # --- 构建文件准备 ---

    def prepare_agent(self, spec: ServiceSpec, source_dir: str) -> Tuple[str, str]:
        """返回 (构建上下文目录, Dockerfile 相对路径)。"""
        context_dir = self._agent_context(spec, source_dir)
        target = os.path.join(context_dir, "Dockerfile")

        if spec.agent.type == "agidentity":
            content = dockerfiles.identity_agent_dockerfile(
                spec.ports,
                include_mpc=os.path.isdir(os.path.join(context_dir, "mpc")),
                include_workspace=os.path.isdir(os.path.join(context_dir, "workspace")),
            )
            self._write(target, content)
        elif spec.agent.dockerfile:
            user_dockerfile = self._user_dockerfile(spec, source_dir)
            if user_dockerfile != os.path.realpath(target):
                shutil.copyfile(user_dockerfile, target)
        else:
            self._write(target, dockerfiles.agent_dockerfile(spec.agent.runtime or "node", spec.ports))
        return context_dir, "Dockerfile"

    def prepare_frontend(self, spec: ServiceSpec, source_dir: str) -> Tuple[str, str]:
        frontend_dir = self._frontend_context(spec, source_dir)
        self._write(os.path.join(frontend_dir, "nginx.conf"), dockerfiles.nginx_conf())
        self._write(os.path.join(frontend_dir, "Dockerfile"), dockerfiles.frontend_dockerfile())
        return frontend_dir, "Dockerfile"

    @staticmethod
    def _write(path: str, content: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

    # --- 执行 ---

    async def run(
        self,
        spec: ServiceSpec,
        source_dir: str,
        namespace: str,
        deployment_uuid: str,
        on_step: Optional[StepCallback] = None
    ) -> BuildResult:
        async def step(message: str):
            logger.info(f"[{deployment_uuid}] {message}")
            if on_step:
                await on_step(message)

        if spec.agent.image:
            agent_image = spec.agent.image
            await step(f"Using pre-built agent image: {agent_image}")
        else:
            agent_image = self.image_tag(namespace, "agent", deployment_uuid)
            context_dir, dockerfile = self.prepare_agent(spec, source_dir)
            await step("Building agent image...")
            await self._build_and_push(context_dir, dockerfile, agent_image, "agent")
            await step(f"Agent image built and pushed: {agent_image}")

        frontend_image = None
        if spec.frontend:
            if spec.frontend.image:
                frontend_image = spec.frontend.image
                await step(f"Using pre-built frontend image: {frontend_image}")
            else:
                frontend_image = self.image_tag(namespace, "frontend", deployment_uuid)
                context_dir, dockerfile = self.prepare_frontend(spec, source_dir)
                await step("Building frontend image...")
                await self._build_and_push(context_dir, dockerfile, frontend_image, "frontend")
                await step(f"Frontend image built and pushed: {frontend_image}")

        return BuildResult(agent_image=agent_image, frontend_image=frontend_image)

    async def _build_and_push(self, context_dir: str, dockerfile: str, tag: str, component: str) -> None:
        try:
            await self.builder.build(context_dir, dockerfile, tag)
            await self.builder.push(tag)
        except ImageBuildError as e:
            raise InfrastructureError(
                f"Failed to build or push the {component} image.",
                diagnostics=bound_output(f"{e}\n{e.output}")
            ) from e

# src/hostnode/engine/builder/base.py

from abc import ABC, abstractmethod
from typing import Dict, Type, TypeVar

class ImageBuildError(Exception):
    """构建或推送失败，output 为捕获的构建输出 (stdout+stderr)。"""
    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output

class BaseImageBuilder(ABC):
    """
    镜像构建器抽象基类。
    build/push 都返回捕获到的输出文本，失败时抛出 ImageBuildError。
    """
    name: str = "base"

    @abstractmethod
    async def build(self, context_dir: str, dockerfile: str, tag: str) -> str:
        """
        :param context_dir: 构建上下文的绝对路径
        :param dockerfile: 相对于 context_dir 的 Dockerfile 路径
        :param tag: 完整镜像引用 {registry}/{namespace}/{component}:{deploymentId}
        """
        raise NotImplementedError

    @abstractmethod
    async def push(self, tag: str) -> str:
        raise NotImplementedError

ALL_IMAGE_BUILDERS: Dict[str, Type[BaseImageBuilder]] = {}

T = TypeVar('T', bound=BaseImageBuilder)

def register_image_builder(cls: Type[T]) -> Type[T]:
    if not getattr(cls, 'name', None):
        raise ValueError(f"Image builder class {cls.__name__} must define a 'name' attribute.")
    if cls.name in ALL_IMAGE_BUILDERS:
        raise ValueError(f"Image builder with name '{cls.name}' already registered.")
    ALL_IMAGE_BUILDERS[cls.name] = cls
    return cls

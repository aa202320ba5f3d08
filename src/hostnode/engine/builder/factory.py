from typing import Dict
from .base import BaseImageBuilder, ALL_IMAGE_BUILDERS

# 导入具体实现以触发注册
from .docker_builder import DockerImageBuilder

_builder_instances: Dict[str, BaseImageBuilder] = {}

def get_image_builder(name: str = "docker") -> BaseImageBuilder:
    if name in _builder_instances:
        return _builder_instances[name]

    builder_cls = ALL_IMAGE_BUILDERS.get(name)
    if not builder_cls:
        raise ValueError(f"Image builder '{name}' is not registered. Available: {list(ALL_IMAGE_BUILDERS.keys())}")

    instance = builder_cls()
    _builder_instances[name] = instance
    return instance

# src/hostnode/engine/cluster/base.py

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, NamedTuple, Type, TypeVar

class ClusterError(Exception):
    """集群 API 调用失败或超时。"""
    pass

class RolloutStatus(NamedTuple):
    desired: int
    updated: int
    ready: int
    available: int
    generation: int
    observed_generation: int

    @property
    def complete(self) -> bool:
        return (
            self.observed_generation >= self.generation
            and self.updated >= self.desired
            and self.ready >= self.desired
            and self.available >= self.desired
        )

class PodStatus(NamedTuple):
    name: str
    phase: str
    ready: bool
    containers: List[str]
    images: Dict[str, str]
    restart_count: int
    labels: Dict[str, str]
    gpu: int = 0

class PodUsage(NamedTuple):
    """metrics-server 返回的单个 pod 的瞬时用量"""
    name: str
    cpu_cores: float
    memory_bytes: int

class BaseClusterClient(ABC):
    """
    集群客户端抽象基类。
    所有方法都是异步的；具体实现负责把阻塞 SDK 调用放到线程中执行并加上超时。
    """
    name: str = "base"

    @abstractmethod
    async def namespace_exists(self, namespace: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def ensure_namespace(self, namespace: str, labels: Optional[Dict[str, str]] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_namespace(self, namespace: str) -> bool:
        """删除租户 namespace 及其全部资源。不存在时返回 False。"""
        raise NotImplementedError

    @abstractmethod
    async def apply(self, namespace: str, document: Dict[str, Any]) -> None:
        """以 server-side apply 的方式创建或更新一个资源文档。"""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, namespace: str, api_version: str, kind: str, name: str) -> bool:
        """删除单个资源，不存在时返回 False。"""
        raise NotImplementedError

    @abstractmethod
    async def get_rollout_status(self, namespace: str, name: str) -> Optional[RolloutStatus]:
        raise NotImplementedError

    @abstractmethod
    async def restart_deployment(self, namespace: str, name: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_pods(self, namespace: str) -> List[PodStatus]:
        raise NotImplementedError

    @abstractmethod
    async def read_logs(
        self,
        namespace: str,
        label_selector: str,
        container: str,
        since_seconds: int,
        tail_lines: int
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    async def list_ingress_hosts(self, namespace: str) -> Dict[str, Any]:
        """返回 {'hosts': [...], 'tls': bool}，用于项目信息页。"""
        raise NotImplementedError

    @abstractmethod
    async def pod_usage(self, namespace: str) -> List[PodUsage]:
        raise NotImplementedError

    @abstractmethod
    async def pvc_requested_bytes(self, namespace: str) -> int:
        raise NotImplementedError

# 定义注册表
ALL_CLUSTER_CLIENTS: Dict[str, Type[BaseClusterClient]] = {}

T = TypeVar('T', bound=BaseClusterClient)

def register_cluster_client(cls: Type[T]) -> Type[T]:
    if not getattr(cls, 'name', None):
        raise ValueError(f"Cluster client class {cls.__name__} must define a 'name' attribute.")
    if cls.name in ALL_CLUSTER_CLIENTS:
        raise ValueError(f"Cluster client with name '{cls.name}' already registered.")
    ALL_CLUSTER_CLIENTS[cls.name] = cls
    return cls

# src/hostnode/engine/metering/main.py

import logging
from abc import ABC, abstractmethod
from typing import NamedTuple
from hostnode.engine.cluster.base import BaseClusterClient

logger = logging.getLogger(__name__)

GIB = 1024 ** 3

class UsageSample(NamedTuple):
    """一个计费窗口内的平均用量。"""
    cpu_cores: float = 0.0
    memory_gb: float = 0.0
    disk_gb: float = 0.0
    network_gb: float = 0.0
    gpu_units: float = 0.0

class BaseUsageMeter(ABC):
    @abstractmethod
    async def collect(self, namespace: str, window_minutes: int) -> UsageSample:
        raise NotImplementedError

class ClusterUsageMeter(BaseUsageMeter):
    """
    以 metrics-server 的瞬时 pod 用量近似整个窗口的用量；
    磁盘按 PVC 申请量计费，GPU 按运行中 pod 的申请量计费。
    metrics-server 不提供网络流量，network_gb 恒为 0。
    """

    def __init__(self, cluster: BaseClusterClient):
        self.cluster = cluster

    async def collect(self, namespace: str, window_minutes: int) -> UsageSample:
        if not await self.cluster.namespace_exists(namespace):
            return UsageSample()
        pod_usages = await self.cluster.pod_usage(namespace)
        pods = await self.cluster.list_pods(namespace)
        disk_bytes = await self.cluster.pvc_requested_bytes(namespace)
        return UsageSample(
            cpu_cores=sum(u.cpu_cores for u in pod_usages),
            memory_gb=sum(u.memory_bytes for u in pod_usages) / GIB,
            disk_gb=disk_bytes / GIB,
            network_gb=0.0,
            gpu_units=float(sum(p.gpu for p in pods if p.phase == "Running")),
        )

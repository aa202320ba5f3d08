from typing import Dict
from .base import BaseClusterClient, ALL_CLUSTER_CLIENTS

# 导入具体实现以触发注册
from .kubernetes_client import KubernetesClusterClient

# 缓存已初始化的实例：Key=ClientName, Value=ClientInstance
_cluster_instances: Dict[str, BaseClusterClient] = {}

def get_cluster_client(name: str = "kubernetes") -> BaseClusterClient:
    if name in _cluster_instances:
        return _cluster_instances[name]

    client_cls = ALL_CLUSTER_CLIENTS.get(name)
    if not client_cls:
        raise ValueError(f"Cluster client '{name}' is not registered. Available: {list(ALL_CLUSTER_CLIENTS.keys())}")

    instance = client_cls()
    _cluster_instances[name] = instance
    return instance

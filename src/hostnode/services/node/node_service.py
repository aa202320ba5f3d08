# src/hostnode/services/node/node_service.py

import logging
from typing import Optional, Tuple
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.dao.project.project_dao import ProjectDao
from hostnode.engine.advertisement.main import BaseAdvertisementPublisher, build_advertisement
from hostnode.engine.cluster.base import ClusterError
from hostnode.schemas.public.public_schemas import NodeInfo, PricingRead
from hostnode.services.topology import naming

logger = logging.getLogger(__name__)

def node_info() -> NodeInfo:
    return NodeInfo(
        identity_key=settings.NODE_IDENTITY_KEY,
        gpu=settings.GPU_ENABLED,
        gpu_type=settings.GPU_TYPE,
        tee=settings.TEE_ENABLED,
        tee_technology=settings.TEE_TECHNOLOGY,
        supported_agent_types=settings.SUPPORTED_AGENT_TYPES,
        supported_runtimes=settings.SUPPORTED_RUNTIMES,
        pricing=PricingRead(
            cpu_rate_per_5min=settings.CPU_RATE_PER_CORE_5MIN,
            mem_rate_per_5min=settings.MEM_RATE_PER_GB_5MIN,
            disk_rate_per_5min=settings.DISK_RATE_PER_GB_5MIN,
            net_rate_per_5min=settings.NET_RATE_PER_GB_5MIN,
            gpu_rate_per_5min=settings.GPU_RATE_PER_UNIT_5MIN,
            interval=f"{settings.BILLING_INTERVAL_MINUTES} minutes",
        ),
        project_deployment_domain=settings.PROJECT_DEPLOYMENT_DNS_NAME,
    )

class NodeService:
    def __init__(self, context: AppContext):
        self.context = context
        self.project_dao = ProjectDao(context.db)

    async def gpu_usage(self) -> Tuple[int, int]:
        """(总数, 可用数)。已用数按各租户运行中 pod 的 GPU 申请量累加。"""
        total = settings.GPU_TOTAL if settings.GPU_ENABLED else 0
        if not total:
            return 0, 0
        used = 0
        for project in await self.project_dao.list_active():
            try:
                pods = await self.context.cluster.list_pods(naming.namespace_for(project.uuid))
            except ClusterError as e:
                logger.warning(f"Skipping GPU usage of project {project.uuid}: {e}")
                continue
            used += sum(p.gpu for p in pods if p.phase == "Running")
        return total, max(0, total - used)

    async def advertise(self, publisher: BaseAdvertisementPublisher, gpu: Optional[Tuple[int, int]] = None) -> None:
        gpu_total, gpu_available = gpu if gpu is not None else await self.gpu_usage()
        await publisher.publish(build_advertisement(gpu_total=gpu_total, gpu_available=gpu_available))

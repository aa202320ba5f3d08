# src/hostnode/services/billing/billing_service.py

import logging
import math
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.dao.billing.ledger_dao import LedgerEntryDao
from hostnode.dao.deployment.deployment_dao import DeploymentDao, ReleaseDao
from hostnode.dao.project.project_dao import ProjectDao
from hostnode.engine.cluster.base import ClusterError
from hostnode.engine.metering.main import BaseUsageMeter, UsageSample
from hostnode.models import Project, ProjectStatus, LedgerEntry, TransactionType, LogLevel, User
from hostnode.schemas.billing.billing_schemas import CreditResult, LedgerEntryRead, BillingStatsQuery
from hostnode.schemas.manifest.manifest_schemas import ServiceSpec
from hostnode.services.auditing.audit_service import AuditService
from hostnode.services.exceptions import (
    ServiceException, NotFoundError, InfrastructureError, DeployValidationError, TenantDeleted
)
from hostnode.services.release.release_manager import ReleaseManager, IngressChange, has_ingress
from hostnode.services.topology import naming
from hostnode.services.topology.topology_generator import TenantState, build_ingress

logger = logging.getLogger(__name__)

NEEDS_REDEPLOY = "Balance restored but the ingress could not be re-enabled; the project needs to be redeployed."

def usage_cost(usage: UsageSample, config=settings) -> int:
    """一个计费窗口的费用 (satoshis)，向上取整。"""
    total = (
        Decimal(str(usage.cpu_cores)) * config.CPU_RATE_PER_CORE_5MIN
        + Decimal(str(usage.memory_gb)) * config.MEM_RATE_PER_GB_5MIN
        + Decimal(str(usage.disk_gb)) * config.DISK_RATE_PER_GB_5MIN
        + Decimal(str(usage.network_gb)) * config.NET_RATE_PER_GB_5MIN
        + Decimal(str(usage.gpu_units)) * config.GPU_RATE_PER_UNIT_5MIN
    )
    return max(0, math.ceil(total))

class BillingService:
    """
    余额与 Ingress 闸门。

    [关键] 余额的每一次变更都在行锁下完成读-改-写，并在同一事务中追加账本记录。
    余额符号翻转时只排队 ingress_gate_task，闸门在租户锁内重新读取余额后再增删 Ingress，
    持有行锁时从不等待租户锁。工作负载始终保持运行。
    """

    def __init__(self, context: AppContext, meter: Optional[BaseUsageMeter] = None):
        self.context = context
        self.db = context.db
        self.meter = meter
        self.project_dao = ProjectDao(context.db)
        self.ledger_dao = LedgerEntryDao(context.db)
        self.deployment_dao = DeploymentDao(context.db)
        self.release_dao = ReleaseDao(context.db)
        self.audit = AuditService(context.db)

    async def _apply(
        self, project: Project, type: TransactionType, amount: int, reason: Optional[Dict[str, Any]]
    ) -> Tuple[Project, LedgerEntry, int]:
        """返回 (加锁后的项目, 账本记录, 变更前余额)。"""
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ServiceException("Amount must be a positive integer.")
        locked = await self.project_dao.get_for_update(project.id)
        if locked is None:
            raise NotFoundError("Project not found.")
        old_balance = locked.balance
        new_balance = old_balance + amount if type == TransactionType.CREDIT else old_balance - amount
        locked.balance = new_balance
        entry = LedgerEntry(
            project_id=locked.id,
            type=type,
            amount=amount,
            balance_after=new_balance,
            reason=reason or {},
        )
        await self.ledger_dao.add(entry, auto_flush=False)
        await self.db.flush()
        return locked, entry, old_balance

    async def credit(self, project: Project, amount: int, reason: Optional[Dict[str, Any]] = None) -> CreditResult:
        project, entry, old_balance = await self._apply(project, TransactionType.CREDIT, amount, reason)
        await self.audit.log_project(project, f"Balance credited by {amount} sats (balance {entry.balance_after}).")
        queued = False
        if old_balance < 0 <= entry.balance_after:
            if await self.release_dao.get_by_project_id(project.id) is None:
                await self.audit.log_project(project, "Balance restored; no rolled-out deployment to re-enable.")
            else:
                queued = await self.schedule_ingress_gate(project, entry.id)
        return CreditResult(balance=entry.balance_after, reenable_queued=queued)

    async def debit(self, project: Project, amount: int, reason: Optional[Dict[str, Any]] = None) -> int:
        project, entry, old_balance = await self._apply(project, TransactionType.DEBIT, amount, reason)
        if old_balance >= 0 > entry.balance_after:
            if await self.release_dao.get_by_project_id(project.id) is not None:
                await self.schedule_ingress_gate(project, entry.id)
        return entry.balance_after

    # ==========================================================================
    # Ingress 闸门
    # ==========================================================================

    async def schedule_ingress_gate(self, project: Project, ledger_entry_id: Optional[int] = None) -> bool:
        """
        排队一次 Ingress 收敛。ledger_entry_id 让任务等到触发它的余额变更提交后再执行。
        """
        if self.context.arq_pool is None:
            logger.warning(f"No arq pool available; ingress gate of project {project.uuid} not scheduled.")
            return False
        try:
            await self.context.arq_pool.enqueue_job("ingress_gate_task", project.uuid, ledger_entry_id)
        except Exception as e:
            raise InfrastructureError("Failed to schedule the ingress gate.", diagnostics=str(e)) from e
        logger.info(f"Queued ingress gate for project {project.uuid} (balance {project.balance}).")
        return True

    async def needs_ingress_gate(self, project: Project) -> bool:
        """欠费但上线记录里仍有 Ingress：上一次删除失败或尚未执行。"""
        if not project.is_suspended:
            return False
        release = await self.release_dao.get_by_project_id(project.id)
        return release is not None and has_ingress(release.documents)

    async def enforce_ingress_gate(self, project_uuid: str) -> Optional[IngressChange]:
        """
        在租户锁内让 Ingress 与当前余额一致，并写入对应的项目日志。
        集群操作失败时返回 None，Ingress 记录保持原样，等待下一次计量周期重试。
        """
        project = await self.project_dao.get_by_uuid(project_uuid)
        if project is None or project.status == ProjectStatus.DELETING:
            logger.info(f"Project {project_uuid} is gone or being deleted; ingress gate skipped.")
            return None
        try:
            change = await ReleaseManager(self.context).reconcile_ingress(project, self._last_rolled_out_ingress)
        except TenantDeleted:
            logger.info(f"Project {project_uuid} was deleted while waiting for the tenant lock.")
            return None
        except (InfrastructureError, DeployValidationError) as e:
            logger.error(f"Ingress gate of project {project_uuid} failed: {e}", exc_info=True)
            await self.db.rollback()
            project = await self.project_dao.get_by_uuid(project_uuid)
            if project is None:
                return None
            if project.is_suspended:
                await self.audit.log_project(
                    project, "Balance is negative but the ingress could not be removed.", LogLevel.ERROR
                )
            else:
                await self.audit.log_project(project, NEEDS_REDEPLOY, LogLevel.ERROR)
            await self.db.commit()
            return None

        if change == IngressChange.DISABLED:
            await self.audit.log_project(
                project,
                "Balance is negative; ingress disabled. Add funds to restore public access.",
                LogLevel.WARN,
            )
        elif change == IngressChange.ENABLED:
            await self.audit.log_project(project, "Balance restored; ingress re-enabled.")
        elif change == IngressChange.UNAVAILABLE:
            await self.audit.log_project(project, NEEDS_REDEPLOY, LogLevel.ERROR)
        await self.db.commit()
        return change

    async def _last_rolled_out_ingress(self, project: Project) -> Optional[Dict[str, Any]]:
        last = await self.deployment_dao.get_last_rolled_out(project.id)
        if last is None or not last.spec_snapshot:
            return None
        spec = ServiceSpec.model_validate(last.spec_snapshot)
        return build_ingress(spec, TenantState.from_project(project), naming.release_name_for(project.uuid))

    # ==========================================================================
    # 计量
    # ==========================================================================

    async def meter_project(self, project: Project, window_minutes: Optional[int] = None) -> int:
        """对一个项目执行一次计量扣费，返回扣费金额 (0 表示不写账本)。"""
        if self.meter is None:
            raise ServiceException("No usage meter configured.")
        window = window_minutes or settings.BILLING_INTERVAL_MINUTES
        try:
            usage = await self.meter.collect(naming.namespace_for(project.uuid), window)
        except ClusterError as e:
            raise InfrastructureError(f"Failed to collect usage of project {project.uuid}.", diagnostics=str(e)) from e
        cost = usage_cost(usage)
        if cost == 0:
            return 0
        reason = {"source": "usage", "window_minutes": window, **usage._asdict()}
        await self.debit(project, cost, reason)
        return cost

    # ==========================================================================
    # 统计
    # ==========================================================================

    async def stats(self, project: Project, query: BillingStatsQuery) -> List[LedgerEntryRead]:
        entries = await self.ledger_dao.list_by_project(
            project.id,
            type=query.type,
            start_time=query.start,
            end_time=query.end,
            page=query.page,
            limit=query.limit,
        )
        return [LedgerEntryRead.model_validate(e) for e in entries]

    async def pay(self, project: Project, amount: int, reason: Dict[str, Any], actor: User) -> CreditResult:
        return await self.credit(project, amount, {"source": "payment", "payer": actor.identity_key, **reason})

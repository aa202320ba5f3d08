# src/hostnode/worker/tasks/billing.py

import logging
from typing import Optional
from hostnode.dao.billing.ledger_dao import LedgerEntryDao
from hostnode.dao.project.project_dao import ProjectDao
from hostnode.services.billing.billing_service import BillingService
from hostnode.services.exceptions import ServiceException
from hostnode.worker.context import build_context_for_worker, retry_handoff

logger = logging.getLogger(__name__)

async def billing_cycle_task(ctx: dict):
    """
    周期性计量扣费。每个项目在自己的事务中结算，单个项目失败不影响其它项目。
    已欠费但 Ingress 仍在的项目 (上次删除失败) 会在提交后再排队一次闸门。
    """
    db_session_factory = ctx['db_session_factory']
    async with db_session_factory() as session:
        project_ids = [p.id for p in await ProjectDao(session).list_active()]

    charged, failed, regated = 0, 0, 0
    for project_id in project_ids:
        try:
            async with db_session_factory() as session:
                async with session.begin():
                    app_context = build_context_for_worker(ctx, session)
                    service = BillingService(app_context, meter=ctx['meter'])
                    project = await ProjectDao(session).get_by_pk(project_id)
                    if project is None:
                        continue
                    was_suspended = project.is_suspended
                    cost = await service.meter_project(project)
                    if cost:
                        charged += 1
                # 本周期刚翻转的项目已由 debit 排队，这里只补做之前失败的删除
                if was_suspended and await service.needs_ingress_gate(project):
                    if await service.schedule_ingress_gate(project):
                        regated += 1
        except ServiceException as e:
            failed += 1
            logger.error(f"Billing of project {project_id} failed: {e.message}", exc_info=True)
    logger.info(
        f"Billing cycle done: {len(project_ids)} projects, {charged} charged, "
        f"{regated} ingress gates retried, {failed} failed."
    )
    return {"projects": len(project_ids), "charged": charged, "regated": regated, "failed": failed}

async def ingress_gate_task(ctx: dict, project_uuid: str, ledger_entry_id: Optional[int] = None):
    """
    让项目的 Ingress 与余额一致。由余额翻转或计量周期排队；
    带 ledger_entry_id 时先确认触发它的账本记录已经提交。
    """
    db_session_factory = ctx['db_session_factory']
    async with db_session_factory() as session:
        if ledger_entry_id is not None and await LedgerEntryDao(session).get_by_pk(ledger_entry_id) is None:
            retry_handoff(ctx, f"Ledger entry {ledger_entry_id} of project {project_uuid}")
            return None
        app_context = build_context_for_worker(ctx, session)
        change = await BillingService(app_context).enforce_ingress_gate(project_uuid)
    logger.info(f"Ingress gate of project {project_uuid} finished: {change.value if change else 'failed'}")
    return change.value if change else None

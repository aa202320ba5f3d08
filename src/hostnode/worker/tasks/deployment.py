# src/hostnode/worker/tasks/deployment.py

import logging
from hostnode.services.deployment.deployment_service import DeploymentService, AWAITING_UPLOAD_COMMIT
from hostnode.services.exceptions import InvalidStateTransition
from hostnode.services.project.project_service import ProjectService
from hostnode.worker.context import build_context_for_worker, retry_handoff

logger = logging.getLogger(__name__)

async def run_deployment_task(ctx: dict, deployment_uuid: str):
    """
    执行一次部署的 build -> topology -> release。
    流水线按阶段自行提交，让 API 能看到中间状态，所以这里不包 session.begin()。
    """
    db_session_factory = ctx['db_session_factory']
    async with db_session_factory() as session:
        app_context = build_context_for_worker(ctx, session)
        service = DeploymentService(app_context, builder=ctx['builder'])
        status = await service.run(deployment_uuid)
    if status in AWAITING_UPLOAD_COMMIT:
        retry_handoff(ctx, f"Upload of deployment {deployment_uuid}")
    logger.info(f"Deployment {deployment_uuid} finished with status {status.value if status else None}")
    return status.value if status else None

async def delete_project_task(ctx: dict, project_uuid: str):
    """删除栅栏的第二步：在租户锁内销毁 namespace 并删除记录。"""
    db_session_factory = ctx['db_session_factory']
    try:
        async with db_session_factory() as session:
            async with session.begin():
                app_context = build_context_for_worker(ctx, session)
                return await ProjectService(app_context).teardown(project_uuid)
    except InvalidStateTransition:
        retry_handoff(ctx, f"Deletion mark of project {project_uuid}")
        return False
    except Exception as e:
        logger.error(f"FATAL: delete_project_task for project {project_uuid} failed: {e}", exc_info=True)
        raise

# src/hostnode/worker/tasks/__init__.py

from arq import cron
from hostnode.core.config import settings
# 1. 导入所有公开任务
from .deployment import run_deployment_task, delete_project_task
from .billing import billing_cycle_task, ingress_gate_task
from .advertisement import refresh_advertisement_task, periodic_advertisement_task
# 2. 导入注册中心
from ..main import TASK_FUNCTIONS, CRON_JOBS

# 3. 注册
TASK_FUNCTIONS.extend([
    run_deployment_task,
    delete_project_task,
    billing_cycle_task,
    ingress_gate_task,
    refresh_advertisement_task,
])

CRON_JOBS.extend([
    cron(billing_cycle_task, minute=set(range(0, 60, settings.BILLING_INTERVAL_MINUTES))),
    cron(periodic_advertisement_task, minute={0, 30}),
])

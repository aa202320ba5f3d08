# tests/services/test_billing_service.py

import math
import pytest
from unittest.mock import AsyncMock
from hostnode.core.config import settings
from hostnode.dao.billing.ledger_dao import LedgerEntryDao
from hostnode.dao.deployment.deployment_dao import ReleaseDao
from hostnode.engine.cluster.base import ClusterError
from hostnode.engine.metering.main import BaseUsageMeter, UsageSample
from hostnode.models import Deployment, DeploymentStatus, ProjectStatus, Release, TransactionType
from hostnode.schemas.billing.billing_schemas import BillingStatsQuery
from hostnode.schemas.manifest.manifest_schemas import NodeCapability
from hostnode.services.auditing.audit_service import AuditService
from hostnode.services.billing.billing_service import BillingService, usage_cost
from hostnode.services.exceptions import ServiceException, InfrastructureError
from hostnode.services.manifest.manifest_compiler import ManifestCompiler
from hostnode.services.release.release_manager import IngressChange, has_ingress
from hostnode.services.topology.topology_generator import TenantState, Images, compile_topology
from tests.conftest import v1_manifest, PROJECT_UUID, IDENTITY_KEY

async def seed_release(db, project, with_ingress: bool):
    """模拟一次已经成功上线的部署及其 release 记录。"""
    spec = ManifestCompiler(node=NodeCapability(), domain="example.com").compile(v1_manifest(), PROJECT_UUID, "mainnet")
    state = TenantState.from_project(project)._replace(balance=0 if with_ingress else -1)
    topology = compile_topology(spec, state, NodeCapability(), Images("registry/agent:1"))
    deployment = Deployment(
        project_id=project.id,
        creator_identity_key=IDENTITY_KEY,
        status=DeploymentStatus.ROLLED_OUT,
        spec_snapshot=spec.model_dump(mode="json"),
    )
    db.add(deployment)
    await db.flush()
    db.add(Release(
        project_id=project.id,
        name=topology.release_name,
        namespace=topology.namespace,
        revision=1,
        digest=topology.digest,
        documents=topology.documents,
        deployment_id=deployment.id,
    ))
    await db.flush()
    return topology

async def test_credit_crossing_zero_queues_ingress_gate(app_context, cluster_mock, arq_pool_mock, project_factory):
    project = await project_factory(balance=-1)
    await seed_release(app_context.db, project, with_ingress=False)

    result = await BillingService(app_context).credit(project, 5, {"txid": "abc"})

    assert result.balance == 4
    assert result.reenable_queued is True
    entries = await LedgerEntryDao(app_context.db).list_by_project(project.id)
    assert len(entries) == 1
    assert (entries[0].type, entries[0].amount, entries[0].balance_after) == (TransactionType.CREDIT, 5, 4)
    arq_pool_mock.enqueue_job.assert_awaited_once_with("ingress_gate_task", PROJECT_UUID, entries[0].id)
    # 行锁持有期间既不碰集群，也不等待租户锁
    cluster_mock.apply.assert_not_awaited()
    app_context.redis_service.tenant_lock.assert_not_called()

async def test_gate_after_credit_restores_ingress(app_context, cluster_mock, project_factory):
    project = await project_factory(balance=-1)
    await seed_release(app_context.db, project, with_ingress=False)
    service = BillingService(app_context)
    await service.credit(project, 5)
    await app_context.db.commit()

    assert await service.enforce_ingress_gate(PROJECT_UUID) == IngressChange.ENABLED

    cluster_mock.apply.assert_awaited_once()
    namespace, document = cluster_mock.apply.await_args.args
    assert document["kind"] == "Ingress"
    release = await ReleaseDao(app_context.db).get_by_project_id(project.id)
    assert has_ingress(release.documents)
    feed = await AuditService(app_context.db).project_feed(project)
    assert any("ingress re-enabled" in entry.message for entry in feed)

async def test_credit_without_crossing_touches_nothing(app_context, cluster_mock, arq_pool_mock, project):
    result = await BillingService(app_context).credit(project, 10)
    assert result.balance == 1010
    assert result.reenable_queued is False
    arq_pool_mock.enqueue_job.assert_not_awaited()
    cluster_mock.apply.assert_not_awaited()

async def test_credit_without_deployment_reports_no_reenable(app_context, arq_pool_mock, project_factory):
    project = await project_factory(balance=-3)
    result = await BillingService(app_context).credit(project, 3)
    assert result.balance == 0
    assert result.reenable_queued is False
    arq_pool_mock.enqueue_job.assert_not_awaited()
    feed = await AuditService(app_context.db).project_feed(project)
    assert any("no rolled-out deployment" in entry.message for entry in feed)

async def test_failed_reenable_is_audited(app_context, cluster_mock, project_factory):
    project = await project_factory(balance=-1)
    await seed_release(app_context.db, project, with_ingress=False)
    service = BillingService(app_context)
    await service.credit(project, 5)
    await app_context.db.commit()
    cluster_mock.apply.side_effect = ClusterError("api unavailable")

    assert await service.enforce_ingress_gate(PROJECT_UUID) is None

    feed = await AuditService(app_context.db).project_feed(project)
    assert any("needs to be redeployed" in entry.message for entry in feed)

async def test_debit_crossing_zero_queues_gate_that_removes_ingress(
    app_context, cluster_mock, arq_pool_mock, project_factory
):
    project = await project_factory(balance=2)
    topology = await seed_release(app_context.db, project, with_ingress=True)
    service = BillingService(app_context)

    assert await service.debit(project, 3, {"source": "usage"}) == -1
    arq_pool_mock.enqueue_job.assert_awaited_once()
    assert arq_pool_mock.enqueue_job.await_args.args[:2] == ("ingress_gate_task", PROJECT_UUID)
    cluster_mock.delete.assert_not_awaited()
    await app_context.db.commit()

    assert await service.enforce_ingress_gate(PROJECT_UUID) == IngressChange.DISABLED
    ingress = topology.find("Ingress")[0]
    cluster_mock.delete.assert_awaited_once_with(
        topology.namespace, ingress["apiVersion"], "Ingress", ingress["metadata"]["name"]
    )
    # 工作负载保持运行
    cluster_mock.delete_namespace.assert_not_awaited()
    feed = await AuditService(app_context.db).project_feed(project)
    assert any("ingress disabled" in entry.message for entry in feed)

async def test_failed_removal_is_retried_until_the_ingress_is_gone(app_context, cluster_mock, project_factory):
    project = await project_factory(balance=2)
    await seed_release(app_context.db, project, with_ingress=True)
    service = BillingService(app_context)
    await service.debit(project, 3)
    await app_context.db.commit()

    cluster_mock.delete.side_effect = ClusterError("apiserver unavailable")
    assert await service.enforce_ingress_gate(PROJECT_UUID) is None
    assert await service.needs_ingress_gate(project) is True
    feed = await AuditService(app_context.db).project_feed(project)
    assert any("could not be removed" in entry.message for entry in feed)

    cluster_mock.delete.side_effect = None
    assert await service.enforce_ingress_gate(PROJECT_UUID) == IngressChange.DISABLED
    assert await service.needs_ingress_gate(project) is False

async def test_debit_while_already_negative_does_not_queue_gate(app_context, arq_pool_mock, project_factory):
    project = await project_factory(balance=-5)
    await seed_release(app_context.db, project, with_ingress=False)
    assert await BillingService(app_context).debit(project, 1) == -6
    arq_pool_mock.enqueue_job.assert_not_awaited()

async def test_gate_skips_project_being_deleted(app_context, cluster_mock, project_factory):
    project = await project_factory(balance=-1, status=ProjectStatus.DELETING)
    await seed_release(app_context.db, project, with_ingress=True)
    await app_context.db.commit()
    assert await BillingService(app_context).enforce_ingress_gate(PROJECT_UUID) is None
    cluster_mock.delete.assert_not_awaited()

async def test_gate_schedule_failure_is_infrastructure_error(app_context, arq_pool_mock, project_factory):
    project = await project_factory(balance=2)
    await seed_release(app_context.db, project, with_ingress=True)
    arq_pool_mock.enqueue_job.side_effect = ConnectionError("redis down")
    with pytest.raises(InfrastructureError):
        await BillingService(app_context).debit(project, 3)

@pytest.mark.parametrize("amount", [0, -5, True])
async def test_amount_must_be_positive_integer(app_context, project, amount):
    with pytest.raises(ServiceException):
        await BillingService(app_context).credit(project, amount)

def test_usage_cost_rounds_up():
    usage = UsageSample(cpu_cores=0.5, memory_gb=0.25)
    expected = 0.5 * settings.CPU_RATE_PER_CORE_5MIN + 0.25 * settings.MEM_RATE_PER_GB_5MIN
    assert usage_cost(usage) == math.ceil(expected)
    assert usage_cost(UsageSample(cpu_cores=0.0001)) == 1
    assert usage_cost(UsageSample()) == 0

async def test_meter_project_debits_usage(app_context, project):
    meter = AsyncMock(spec=BaseUsageMeter)
    meter.collect.return_value = UsageSample(cpu_cores=1.0)
    cost = await BillingService(app_context, meter=meter).meter_project(project)

    assert cost == settings.CPU_RATE_PER_CORE_5MIN
    entries = await LedgerEntryDao(app_context.db).list_by_project(project.id)
    assert entries[0].type == TransactionType.DEBIT
    assert entries[0].reason["source"] == "usage"

async def test_meter_project_with_zero_usage_writes_nothing(app_context, project):
    meter = AsyncMock(spec=BaseUsageMeter)
    meter.collect.return_value = UsageSample()
    assert await BillingService(app_context, meter=meter).meter_project(project) == 0
    assert await LedgerEntryDao(app_context.db).list_by_project(project.id) == []

async def test_meter_cluster_failure_is_infrastructure_error(app_context, project):
    meter = AsyncMock(spec=BaseUsageMeter)
    meter.collect.side_effect = ClusterError("metrics unavailable")
    with pytest.raises(InfrastructureError):
        await BillingService(app_context, meter=meter).meter_project(project)

async def test_stats_filters_by_type(app_context, project):
    service = BillingService(app_context)
    await service.credit(project, 100)
    await service.debit(project, 30)
    debits = await service.stats(project, BillingStatsQuery(type=TransactionType.DEBIT))
    assert [(e.type, e.amount, e.balance_after) for e in debits] == [(TransactionType.DEBIT, 30, 1070)]

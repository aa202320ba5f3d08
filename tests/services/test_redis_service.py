# tests/services/test_redis_service.py

import asyncio
from typing import Dict, List
import pytest
from hostnode.core.config import settings
from hostnode.schemas.manifest.manifest_schemas import NodeCapability
from hostnode.services.exceptions import TenantLockTimeout
from hostnode.services.redis_service import RedisService
from hostnode.services.manifest.manifest_compiler import ManifestCompiler
from hostnode.services.release.release_manager import ReleaseManager
from hostnode.services.topology.topology_generator import TenantState, Images, compile_topology
from tests.conftest import v1_manifest, PROJECT_UUID

class FakeLock:
    """redis-py 异步锁的最小替身: 同名锁共享一把 asyncio.Lock，blocking_timeout 到期返回 False。"""

    def __init__(self, inner: asyncio.Lock, blocking_timeout: float):
        self.inner = inner
        self.blocking_timeout = blocking_timeout

    async def acquire(self) -> bool:
        try:
            await asyncio.wait_for(self.inner.acquire(), timeout=self.blocking_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self) -> None:
        self.inner.release()

class FakeRedis:
    def __init__(self):
        self.locks: Dict[str, asyncio.Lock] = {}
        self.requested: List[dict] = []

    def lock(self, name: str, timeout: float = None, blocking_timeout: float = None) -> FakeLock:
        self.requested.append({"name": name, "timeout": timeout, "blocking_timeout": blocking_timeout})
        return FakeLock(self.locks.setdefault(name, asyncio.Lock()), blocking_timeout)

def topology_for(project):
    spec = ManifestCompiler(node=NodeCapability(), domain="example.com").compile(v1_manifest(), PROJECT_UUID, "mainnet")
    return compile_topology(spec, TenantState.from_project(project), NodeCapability(), Images("registry/agent:1"))

@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()

@pytest.fixture
def redis_service(fake_redis) -> RedisService:
    return RedisService(client=fake_redis)

async def test_lock_key_and_timeouts(redis_service, fake_redis):
    async with redis_service.tenant_lock("abc"):
        pass
    assert fake_redis.requested == [{
        "name": "lock:tenant:abc",
        "timeout": settings.TENANT_LOCK_TIMEOUT_SECONDS,
        "blocking_timeout": settings.TENANT_LOCK_WAIT_SECONDS,
    }]

async def test_second_holder_waits_for_the_first(redis_service):
    events = []
    first_inside = asyncio.Event()
    let_first_go = asyncio.Event()

    async def first():
        async with redis_service.tenant_lock("abc"):
            events.append("first in")
            first_inside.set()
            await let_first_go.wait()
            events.append("first out")

    async def second():
        await first_inside.wait()
        async with redis_service.tenant_lock("abc"):
            events.append("second in")

    tasks = [asyncio.create_task(first()), asyncio.create_task(second())]
    await first_inside.wait()
    await asyncio.sleep(0.01)
    assert events == ["first in"]

    let_first_go.set()
    await asyncio.gather(*tasks)
    assert events == ["first in", "first out", "second in"]

async def test_other_tenants_are_not_blocked(redis_service):
    async with redis_service.tenant_lock("abc"):
        async with redis_service.tenant_lock("def"):
            pass

async def test_wait_timeout_raises(redis_service, monkeypatch):
    monkeypatch.setattr(settings, "TENANT_LOCK_WAIT_SECONDS", 0.01)
    async with redis_service.tenant_lock("abc"):
        with pytest.raises(TenantLockTimeout):
            async with redis_service.tenant_lock("abc"):
                pass

async def test_lock_is_released_when_the_body_fails(redis_service, monkeypatch):
    monkeypatch.setattr(settings, "TENANT_LOCK_WAIT_SECONDS", 0.01)
    with pytest.raises(RuntimeError):
        async with redis_service.tenant_lock("abc"):
            raise RuntimeError("apply failed")
    # 没有释放的话这里会超时
    async with redis_service.tenant_lock("abc"):
        pass

async def test_teardown_waits_for_a_running_apply(app_context, redis_service, cluster_mock, project):
    context = app_context.model_copy(update={"redis_service": redis_service})
    events = []
    apply_started = asyncio.Event()
    let_apply_finish = asyncio.Event()

    async def slow_apply(namespace, document):
        events.append(f"apply {document['kind']}")
        apply_started.set()
        await let_apply_finish.wait()

    async def record_delete(namespace):
        events.append("delete namespace")
        return True

    cluster_mock.apply.side_effect = slow_apply
    cluster_mock.delete_namespace.side_effect = record_delete
    topology = topology_for(project)

    applying = asyncio.create_task(ReleaseManager(context).apply(project, topology))
    await apply_started.wait()
    tearing_down = asyncio.create_task(ReleaseManager(context).teardown(project))
    await asyncio.sleep(0.01)
    assert "delete namespace" not in events

    let_apply_finish.set()
    outcome = await applying
    assert await tearing_down is True
    assert outcome.revision == 1
    assert events[-1] == "delete namespace"
    assert len(events) == len(topology.documents) + 1

# tests/conftest.py

import io
import json
import tarfile
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Any, Optional
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool
from unittest.mock import AsyncMock, MagicMock
from arq.connections import ArqRedis
from hostnode.main import app
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.db.base import Base
from hostnode.db.session import get_db, create_session_factory
from hostnode.engine.cluster.base import BaseClusterClient, RolloutStatus
from hostnode.engine.notification.base import BaseNotifier
from hostnode.models import User, Project, ProjectAdmin, Network
from hostnode.services.redis_service import RedisService

IDENTITY_KEY = "02" + "a" * 64
OTHER_IDENTITY_KEY = "03" + "b" * 64
PROJECT_UUID = "0123456789abcdef0123456789abcdef"

# ==============================================================================
# 1. 数据库 Fixtures (内存 SQLite，每个测试一个全新的库)
# ==============================================================================

def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

@pytest.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        settings.DATABASE_URL_TEST,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture(scope="function")
def session_factory(test_engine):
    return create_session_factory(test_engine)

@pytest.fixture(scope="function")
async def file_session_factory(tmp_path):
    """文件库：每个会话独立连接，用于验证跨会话的提交可见性。"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hostnode.db'}")
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()

@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()

# ==============================================================================
# 2. Mock 协作者
# ==============================================================================

def complete_rollout() -> RolloutStatus:
    return RolloutStatus(desired=1, updated=1, ready=1, available=1, generation=1, observed_generation=1)

@pytest.fixture(scope="function")
def cluster_mock() -> AsyncMock:
    cluster = AsyncMock(spec=BaseClusterClient)
    cluster.namespace_exists.return_value = True
    cluster.delete_namespace.return_value = True
    cluster.delete.return_value = True
    cluster.get_rollout_status.return_value = complete_rollout()
    cluster.list_pods.return_value = []
    cluster.read_logs.return_value = ""
    cluster.list_ingress_hosts.return_value = {"hosts": [], "tls": False}
    cluster.pod_usage.return_value = []
    cluster.pvc_requested_bytes.return_value = 0
    return cluster

@pytest.fixture(scope="function")
def redis_service_mock() -> MagicMock:
    """租户锁直接放行，但记录调用以便断言。"""
    @asynccontextmanager
    async def _tenant_lock(project_uuid: str):
        yield

    redis_service = MagicMock(spec=RedisService)
    redis_service.tenant_lock.side_effect = _tenant_lock
    return redis_service

@pytest.fixture(scope="function")
def arq_pool_mock() -> AsyncMock:
    return AsyncMock(spec=ArqRedis)

@pytest.fixture(scope="function")
def notifier_mock() -> AsyncMock:
    return AsyncMock(spec=BaseNotifier)

@pytest.fixture(scope="function")
def app_context(db_session, cluster_mock, redis_service_mock, arq_pool_mock, notifier_mock) -> AppContext:
    return AppContext(
        db=db_session,
        redis_service=redis_service_mock,
        arq_pool=arq_pool_mock,
        cluster=cluster_mock,
        notifier=notifier_mock,
    )

# ==============================================================================
# 3. 数据 Fixtures
# ==============================================================================

@pytest.fixture(scope="function")
async def registered_user(db_session: AsyncSession) -> User:
    user = User(identity_key=IDENTITY_KEY, email="owner@example.com")
    db_session.add(user)
    await db_session.flush()
    return user

@pytest.fixture(scope="function")
async def project_factory(db_session: AsyncSession, registered_user: User):
    async def _create(
        uuid: str = PROJECT_UUID,
        balance: int = 1000,
        network: Network = Network.MAINNET,
        admin: Optional[User] = None,
        **fields
    ) -> Project:
        project = Project(uuid=uuid, name="Test Project", network=network, balance=balance, agent_config={}, **fields)
        db_session.add(project)
        await db_session.flush()
        db_session.add(ProjectAdmin(project_id=project.id, identity_key=(admin or registered_user).identity_key))
        await db_session.flush()
        await db_session.refresh(project)
        return project
    return _create

async def seed_tenant(session: AsyncSession, balance: int = 1000) -> Project:
    """在独立会话里建好用户与项目并提交。"""
    session.add(User(identity_key=IDENTITY_KEY, email="owner@example.com"))
    project = Project(uuid=PROJECT_UUID, name="Test Project", network=Network.MAINNET, balance=balance, agent_config={})
    session.add(project)
    await session.flush()
    session.add(ProjectAdmin(project_id=project.id, identity_key=IDENTITY_KEY))
    await session.commit()
    return project

@pytest.fixture(scope="function")
async def project(project_factory) -> Project:
    return await project_factory()

# ==============================================================================
# 4. Manifest / artifact 构造器
# ==============================================================================

def v1_manifest(project_uuid: str = PROJECT_UUID, **overrides) -> Dict[str, Any]:
    manifest = {
        "schema": "mandala-agent",
        "schemaVersion": "1.0",
        "agent": {"type": "custom", "runtime": "node"},
        "ports": [8080],
        "healthCheck": {"path": "/health", "intervalSeconds": 30},
        "deployments": [{"provider": "mandala", "projectID": project_uuid, "network": "mainnet"}],
    }
    manifest.update(overrides)
    return manifest

def make_artifact(files: Dict[str, Any]) -> bytes:
    """构造 gzip tarball；dict/list 值会被写成 JSON。"""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            if isinstance(content, (dict, list)):
                content = json.dumps(content)
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()

# ==============================================================================
# 5. HTTP Client
# ==============================================================================

@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    cluster_mock: AsyncMock,
    redis_service_mock: MagicMock,
    arq_pool_mock: AsyncMock,
    notifier_mock: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    # 模拟 lifespan 中设置的 app.state
    app.state.redis_service = redis_service_mock
    app.state.arq_pool = arq_pool_mock
    app.state.cluster = cluster_mock
    app.state.notifier = notifier_mock

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Identity-Key": IDENTITY_KEY},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

@pytest.fixture(autouse=True)
def staging_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "STAGING_DIR", str(tmp_path / "staging"))
    return tmp_path / "staging"

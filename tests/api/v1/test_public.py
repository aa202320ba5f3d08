# tests/api/v1/test_public.py

import pytest
from httpx import AsyncClient
from fastapi import status

from hostnode.core.config import settings

pytestmark = pytest.mark.asyncio

async def test_public_info_needs_no_identity(client: AsyncClient):
    response = await client.get("/api/v1/public", headers={"X-Identity-Key": ""})

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["pricing"]["cpu_rate_per_5min"] == settings.CPU_RATE_PER_CORE_5MIN
    assert data["pricing"]["currency"] == "BSV satoshis"
    assert data["supported_agent_types"] == settings.SUPPORTED_AGENT_TYPES
    assert data["project_deployment_domain"] == settings.PROJECT_DEPLOYMENT_DNS_NAME

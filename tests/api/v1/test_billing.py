# tests/api/v1/test_billing.py

import pytest
from httpx import AsyncClient
from fastapi import status

from hostnode.models import Project
from tests.conftest import IDENTITY_KEY

pytestmark = pytest.mark.asyncio

class TestBilling:
    async def test_pay_credits_balance(self, client: AsyncClient, project: Project):
        """[成功路径] 充值写入账本并返回新余额。"""
        response = await client.post(f"/api/v1/projects/{project.uuid}/pay", json={"amount": 500, "reason": {"txid": "ab"}})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"] == {"balance": 1500, "reenable_queued": False}

        entries = (await client.get(f"/api/v1/projects/{project.uuid}/billing/stats")).json()["data"]
        assert len(entries) == 1
        assert entries[0]["type"] == "credit"
        assert entries[0]["balance_after"] == 1500
        assert entries[0]["reason"] == {"source": "payment", "payer": IDENTITY_KEY, "txid": "ab"}

    @pytest.mark.parametrize("amount", [0, -1, "ten"])
    async def test_pay_rejects_non_positive_amount(self, client: AsyncClient, project: Project, amount):
        response = await client.post(f"/api/v1/projects/{project.uuid}/pay", json={"amount": amount})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_stats_filter_by_type(self, client: AsyncClient, project: Project):
        await client.post(f"/api/v1/projects/{project.uuid}/pay", json={"amount": 1})
        response = await client.get(f"/api/v1/projects/{project.uuid}/billing/stats", params={"type": "debit"})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"] == []

    async def test_stats_limit_is_bounded(self, client: AsyncClient, project: Project):
        response = await client.get(f"/api/v1/projects/{project.uuid}/billing/stats", params={"limit": 5000})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

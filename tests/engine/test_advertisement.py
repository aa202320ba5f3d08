# tests/engine/test_advertisement.py

import json
import httpx
import pytest
from hostnode.core.config import settings
from hostnode.engine.advertisement.main import AdvertisementError, HttpAdvertisementPublisher, build_advertisement

REGISTRY_URL = "https://registry.example.com/nodes/self"

def publisher(handler, url=REGISTRY_URL) -> HttpAdvertisementPublisher:
    return HttpAdvertisementPublisher(url=url, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

def test_advertisement_describes_capabilities_and_pricing():
    ad = build_advertisement(gpu_total=4, gpu_available=3)
    assert ad["capabilities"]["gpuTotal"] == 4
    assert ad["capabilities"]["gpuAvailable"] == 3
    assert ad["capabilities"]["supportedAgentTypes"] == settings.SUPPORTED_AGENT_TYPES
    assert ad["pricing"]["cpu_rate_per_core_5min"] == settings.CPU_RATE_PER_CORE_5MIN
    assert ad["url"] == settings.NODE_SERVER_BASEURL

async def test_publish_puts_advertisement():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.method, json.loads(request.content)))
        return httpx.Response(200)

    await publisher(handler).publish({"protocol": "mandala-node-v1"})
    assert received == [("PUT", {"protocol": "mandala-node-v1"})]

async def test_publish_failure_raises():
    with pytest.raises(AdvertisementError, match="503"):
        await publisher(lambda request: httpx.Response(503)).publish({})

async def test_publish_without_url_is_skipped(monkeypatch):
    monkeypatch.setattr(settings, "ADVERTISEMENT_URL", None)
    calls = []
    await HttpAdvertisementPublisher(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(200)))
    ).publish({})
    assert calls == []

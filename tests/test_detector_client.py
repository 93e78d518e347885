import json

import httpx
import pytest

from sqlguard.core.errors import GatewayUnavailable
from sqlguard.services.detector_client import DetectorClient


def make_client(handler, api_key="secret"):
    return DetectorClient(
        base_url="http://detector.test/api/",
        api_key=api_key,
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_analyze_query_posts_payload_with_credentials():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"confidence": 88, "detection_id": "d-1"})

    client = make_client(handler)
    out = await client.analyze_query("SELECT 1", "bert", "fast")
    await client.aclose()

    assert out == {"confidence": 88, "detection_id": "d-1"}
    assert seen["url"] == "http://detector.test/api/detect"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"query": "SELECT 1", "model_choice": "bert", "mode": "fast"}


@pytest.mark.asyncio
async def test_no_authorization_header_without_key():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"total_queries": 1, "malicious_queries": 0})

    client = make_client(handler, api_key="")
    await client.fetch_metrics()
    await client.aclose()
    assert seen["auth"] is None


@pytest.mark.asyncio
async def test_fetch_metrics_gets_counters():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/api/metrics"
        return httpx.Response(200, json={"total_queries": 40, "malicious_queries": 2, "queries_per_minute": 6})

    client = make_client(handler)
    out = await client.fetch_metrics(timeout=0.5)
    await client.aclose()
    assert out["queries_per_minute"] == 6


@pytest.mark.asyncio
async def test_server_error_raises_gateway_unavailable():
    client = make_client(lambda request: httpx.Response(503, json={"error": "down"}))
    with pytest.raises(GatewayUnavailable) as info:
        await client.analyze_query("SELECT 1")
    await client.aclose()
    assert info.value.status_code == 503


@pytest.mark.asyncio
async def test_network_error_raises_gateway_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(GatewayUnavailable):
        await client.fetch_metrics()
    await client.aclose()


@pytest.mark.asyncio
async def test_timeout_raises_gateway_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    client = make_client(handler)
    with pytest.raises(GatewayUnavailable):
        await client.analyze_query("SELECT 1")
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(200, text="<html>oops</html>"),
    httpx.Response(200, json=[1, 2, 3]),
])
async def test_unusable_body_raises_gateway_unavailable(response):
    client = make_client(lambda request: response)
    with pytest.raises(GatewayUnavailable):
        await client.analyze_query("SELECT 1")
    await client.aclose()

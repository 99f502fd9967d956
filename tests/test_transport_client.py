import json

import httpx
import pytest
import respx
from cloudweave.transport.client import EngineClient, MonitorClient, parse_address
from cloudweave.transport.errors import StatusCode, TransportError
from cloudweave.transport.messages import (
    LogRequest,
    RegisterResourceRequest,
    ResourceInvokeRequest,
)

BASE = "http://127.0.0.1:50051"


def test_parse_address():
    assert parse_address("127.0.0.1:50051") == ("127.0.0.1", 50051)
    assert parse_address("http://localhost:9000/") == ("localhost", 9000)
    assert parse_address("localhost") == ("localhost", 50051)


@pytest.mark.asyncio
async def test_register_resource_round_trip():
    async with MonitorClient("127.0.0.1:50051") as client:
        with respx.mock:
            route = respx.post(f"{BASE}/pulumirpc.ResourceMonitor/RegisterResource").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "urn": "urn:pulumi:dev::p::t:m:R::r",
                        "id": "r-1",
                        "object": {"a": 1.0},
                    },
                )
            )

            response = await client.register_resource(
                RegisterResourceRequest(
                    type="t:m:R", name="r", plugin_download_url="https://get", alias_urns=["u"]
                )
            )

            assert response.id == "r-1"
            assert response.object == {"a": 1.0}
            sent = route.calls.last.request
            body = json.loads(sent.content)
            assert body["type"] == "t:m:R"
            assert body["pluginDownloadURL"] == "https://get"
            assert body["aliasURNs"] == ["u"]
            assert body["acceptSecrets"] is True
            assert sent.headers["Connect-Protocol-Version"] == "1"


@pytest.mark.asyncio
async def test_not_connected_is_retryable_unavailable():
    client = MonitorClient("127.0.0.1:50051")

    with pytest.raises(TransportError) as exc_info:
        await client.register_resource(RegisterResourceRequest(type="t:m:R", name="r"))

    assert exc_info.value.code is StatusCode.UNAVAILABLE
    assert exc_info.value.retryable


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("http_status", "body", "code"),
    [
        (503, None, StatusCode.UNAVAILABLE),
        (429, None, StatusCode.RESOURCE_EXHAUSTED),
        (400, {"code": "invalid_argument", "message": "bad"}, StatusCode.INVALID_ARGUMENT),
        (500, {"code": 13, "message": "internal"}, StatusCode.INTERNAL),
    ],
)
async def test_error_status_mapping(http_status, body, code):
    async with MonitorClient("127.0.0.1:50051") as client:
        with respx.mock:
            respx.post(f"{BASE}/pulumirpc.ResourceMonitor/Invoke").mock(
                return_value=httpx.Response(http_status, json=body)
            )

            with pytest.raises(TransportError) as exc_info:
                await client.invoke(ResourceInvokeRequest(tok="x:y:z"))

    assert exc_info.value.code is code


@pytest.mark.asyncio
async def test_connection_error_is_unavailable():
    async with MonitorClient("127.0.0.1:50051") as client:
        with respx.mock:
            respx.post(f"{BASE}/pulumirpc.ResourceMonitor/Invoke").mock(
                side_effect=httpx.ConnectError("refused")
            )

            with pytest.raises(TransportError) as exc_info:
                await client.invoke(ResourceInvokeRequest(tok="x:y:z"))

    assert exc_info.value.code is StatusCode.UNAVAILABLE
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_timeout_is_deadline_exceeded():
    async with MonitorClient("127.0.0.1:50051") as client:
        with respx.mock:
            respx.post(f"{BASE}/pulumirpc.ResourceMonitor/Invoke").mock(
                side_effect=httpx.ReadTimeout("slow")
            )

            with pytest.raises(TransportError) as exc_info:
                await client.invoke(ResourceInvokeRequest(tok="x:y:z"))

    assert exc_info.value.code is StatusCode.DEADLINE_EXCEEDED
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_malformed_response_is_internal():
    async with MonitorClient("127.0.0.1:50051") as client:
        with respx.mock:
            respx.post(f"{BASE}/pulumirpc.ResourceMonitor/RegisterResource").mock(
                return_value=httpx.Response(200, json={"id": "no-urn"})
            )

            with pytest.raises(TransportError) as exc_info:
                await client.register_resource(RegisterResourceRequest(type="t", name="n"))

    assert exc_info.value.code is StatusCode.INTERNAL


@pytest.mark.asyncio
async def test_engine_log_never_raises():
    async with EngineClient("127.0.0.1:50051") as client:
        with respx.mock:
            route = respx.post(f"{BASE}/pulumirpc.Engine/Log").mock(
                return_value=httpx.Response(503)
            )

            await client.log(LogRequest(severity=2, message="hi"))

            assert route.called


@pytest.mark.asyncio
async def test_engine_root_resource():
    async with EngineClient("127.0.0.1:50051") as client:
        with respx.mock:
            respx.post(f"{BASE}/pulumirpc.Engine/GetRootResource").mock(
                return_value=httpx.Response(200, json={"urn": "urn:pulumi:dev::p::pulumi:pulumi:Stack::p-dev"})
            )

            assert await client.get_root_resource() == "urn:pulumi:dev::p::pulumi:pulumi:Stack::p-dev"


@pytest.mark.asyncio
async def test_supports_feature():
    async with MonitorClient("127.0.0.1:50051") as client:
        with respx.mock:
            respx.post(f"{BASE}/pulumirpc.ResourceMonitor/SupportsFeature").mock(
                return_value=httpx.Response(200, json={"hasSupport": True})
            )

            assert await client.supports_feature("secrets")

"""
Unit tests for the telephony REST client, using httpx's mock transport.
"""

import json

import httpx
import pytest

from callbridge.errors import CallAcceptError
from callbridge.models.message_schemas import AcceptPayload, AudioConfig, AudioOutputConfig
from callbridge.services.telephony_client import TelephonyClient


def make_client(handler):
    return TelephonyClient(
        "test-api-key",
        base_url="https://api.example.com/v1/",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def make_payload():
    return AcceptPayload(
        model="gpt-realtime",
        instructions="Be helpful.",
        audio=AudioConfig(output=AudioOutputConfig(voice="alloy")),
    )


@pytest.mark.asyncio
async def test_accept_posts_payload():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200)

    client = make_client(handler)
    await client.accept("rtc_1", make_payload())
    await client.aclose()

    assert str(requests[0].url) == "https://api.example.com/v1/realtime/calls/rtc_1/accept"
    body = json.loads(requests[0].content)
    assert body == {
        "type": "realtime",
        "model": "gpt-realtime",
        "instructions": "Be helpful.",
        "audio": {"output": {"voice": "alloy"}},
    }


def test_default_client_sends_bearer_token():
    client = TelephonyClient("test-api-key")
    assert client._client.headers["Authorization"] == "Bearer test-api-key"


@pytest.mark.asyncio
async def test_accept_error_status_raises():
    client = make_client(lambda request: httpx.Response(404, text="call not found"))
    with pytest.raises(CallAcceptError) as exc_info:
        await client.accept("rtc_1", make_payload())
    assert exc_info.value.provider_status == 404
    assert exc_info.value.status_code == 502
    assert exc_info.value.call_id == "rtc_1"


@pytest.mark.asyncio
async def test_accept_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = make_client(handler)
    with pytest.raises(CallAcceptError, match="timed out"):
        await client.accept("rtc_1", make_payload())


@pytest.mark.asyncio
async def test_reject_sends_sip_status():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200)

    client = make_client(handler)
    assert await client.reject("rtc_1", status_code=486) is True
    assert requests[0].url.path == "/v1/realtime/calls/rtc_1/reject"
    assert json.loads(requests[0].content) == {"status_code": 486}


@pytest.mark.asyncio
async def test_hangup_failure_is_not_raised():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    client = make_client(handler)
    assert await client.hangup("rtc_1") is False

    client = make_client(lambda request: httpx.Response(500))
    assert await client.hangup("rtc_1") is False

    client = make_client(lambda request: httpx.Response(200))
    assert await client.hangup("rtc_1") is True

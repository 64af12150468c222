"""
Unit tests for the incoming-call webhook handling.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from callbridge.errors import CallAcceptError
from callbridge.handlers.webhook_handlers import (
    extract_party,
    handle_webhook_event,
    parse_incoming_call,
)
from callbridge.models.call_session import CallSession
from callbridge.models.message_schemas import IncomingCallEvent


def incoming_event(call_id="rtc_abc123", headers=None, event_id="evt_1"):
    return {
        "id": event_id,
        "type": "realtime.call.incoming",
        "data": {
            "call_id": call_id,
            "sip_headers": headers if headers is not None else [
                {"name": "From", "value": '"Alice" <sip:+15550100@sip.example.com>;tag=abc'},
                {"name": "To", "value": "<sip:+15550199@sip.example.com;user=phone>"},
                {"name": "X-Twilio-CallSid", "value": "CA123"},
                {"name": "X-Conference-Name", "value": "conf-42"},
                {"name": "X-Twilio-CallToken", "value": "token-xyz"},
                {"name": "Diversion", "value": "<sip:+15550111@carrier.example>;reason=unconditional"},
            ],
        },
    }


@pytest.fixture
def mock_bridge():
    bridge = MagicMock()
    bridge.accepting = True
    bridge.handle_incoming_call = AsyncMock(return_value=CallSession("rtc_abc123"))
    return bridge


@pytest.mark.parametrize(
    "value,expected",
    [
        ('"Alice" <sip:+15550100@example.com>;tag=1', "+15550100"),
        ("sips:bob@example.com", "bob"),
        ("tel:+15550100;phone-context=x", "+15550100"),
        ("<+15550100>", "+15550100"),
        ("", None),
        (None, None),
    ],
)
def test_extract_party(value, expected):
    assert extract_party(value) == expected


def test_parse_incoming_call_extracts_identity_and_metadata():
    call = parse_incoming_call(IncomingCallEvent(**incoming_event()))

    assert call.call_id == "rtc_abc123"
    assert call.from_party == "+15550100"
    assert call.to_party == "+15550199"
    assert call.conference_name == "conf-42"
    assert call.call_token == "token-xyz"
    assert call.metadata == {
        "diverted_from": "+15550111",
        "provider_call_sid": "CA123",
        "webhook_event_id": "evt_1",
    }


def test_parse_incoming_call_without_headers():
    call = parse_incoming_call(IncomingCallEvent(**incoming_event(headers=[])))
    assert call.from_party == "unknown"
    assert call.to_party == "unknown"
    assert call.conference_name is None
    assert "diverted_from" not in call.metadata


@pytest.mark.asyncio
async def test_incoming_call_is_handed_to_bridge(mock_bridge):
    status, body = await handle_webhook_event(incoming_event(), mock_bridge)

    assert status == 200
    assert body == {"ok": True, "call_id": "rtc_abc123", "status": "incoming"}
    call = mock_bridge.handle_incoming_call.call_args.args[0]
    assert call.from_party == "+15550100"


@pytest.mark.asyncio
async def test_duplicate_signal_is_acknowledged(mock_bridge):
    mock_bridge.handle_incoming_call.return_value = None
    status, body = await handle_webhook_event(incoming_event(), mock_bridge)
    assert status == 200
    assert body["duplicate"] is True


@pytest.mark.asyncio
async def test_accept_failure_returns_502(mock_bridge):
    mock_bridge.handle_incoming_call.side_effect = CallAcceptError("rtc_abc123", "rejected")
    status, body = await handle_webhook_event(incoming_event(), mock_bridge)

    assert status == 502
    assert body["ok"] is False
    assert body["call_id"] == "rtc_abc123"
    assert body["error"]["code"] == "accept_failed"


@pytest.mark.asyncio
async def test_other_event_types_are_ignored(mock_bridge):
    status, body = await handle_webhook_event({"type": "realtime.call.ended", "data": {}}, mock_bridge)
    assert status == 200
    assert body["ignored"] == "realtime.call.ended"
    mock_bridge.handle_incoming_call.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message",
    [
        {"data": {"call_id": "x"}},
        {"type": "realtime.call.incoming", "data": {}},
        {"type": "realtime.call.incoming", "data": {"call_id": "   "}},
    ],
)
async def test_malformed_events_return_400(mock_bridge, message):
    status, body = await handle_webhook_event(message, mock_bridge)
    assert status == 400
    assert body["error"]["code"] == "invalid_event"
    mock_bridge.handle_incoming_call.assert_not_awaited()


@pytest.mark.asyncio
async def test_shutting_down_returns_503(mock_bridge):
    mock_bridge.accepting = False
    mock_bridge.handle_incoming_call.return_value = None
    status, body = await handle_webhook_event(incoming_event(), mock_bridge)
    assert status == 503
    assert body["error"]["code"] == "shutting_down"

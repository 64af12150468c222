"""
Unit tests for CallSession state and channel helpers.
"""

import pytest

from callbridge.errors import InvalidTransitionError
from callbridge.models.call_session import CallSession, CallStatus
from callbridge.models.transcript import Speaker

from conftest import FakeChannel


def test_new_session_defaults():
    session = CallSession("call-1", from_party=None, to_party="+15550199")
    assert session.status == CallStatus.INCOMING
    assert session.from_party == "unknown"
    assert session.to_party == "+15550199"
    assert session.buffers == {Speaker.CALLER: "", Speaker.AGENT: ""}
    assert session.transcript_seq == 0
    assert session.ended_at is None
    assert not session.channel_open


def test_transitions_only_move_forward():
    session = CallSession("call-1")
    session.transition(CallStatus.LIVE)
    session.transition(CallStatus.ENDED)
    assert session.ended_at is not None

    for target in CallStatus:
        with pytest.raises(InvalidTransitionError):
            session.transition(target)


def test_incoming_cannot_end_directly():
    session = CallSession("call-1")
    with pytest.raises(InvalidTransitionError):
        session.transition(CallStatus.ENDED)


def test_terminate_live_session_ends_it():
    session = CallSession("call-1")
    session.transition(CallStatus.LIVE)
    assert session.terminate("operator_hangup") is True
    assert session.status == CallStatus.ENDED
    assert session.end_reason == "operator_hangup"


def test_terminate_incoming_session_fails_it():
    session = CallSession("call-1")
    assert session.terminate("accept_failed") is True
    assert session.status == CallStatus.FAILED


def test_terminate_is_idempotent():
    session = CallSession("call-1")
    session.transition(CallStatus.LIVE)
    assert session.terminate("channel_closed") is True
    ended_at = session.ended_at
    assert session.terminate("operator_hangup") is False
    assert session.end_reason == "channel_closed"
    assert session.ended_at == ended_at


def test_next_seq_increments():
    session = CallSession("call-1")
    assert [session.next_seq() for _ in range(3)] == [1, 2, 3]


@pytest.mark.asyncio
async def test_close_channel_runs_once():
    session = CallSession("call-1")
    channel = FakeChannel()
    session.attach_channel(channel)
    assert session.channel_open

    await session.close_channel()
    await session.close_channel()

    assert channel.close_count == 1
    assert not session.channel_open


@pytest.mark.asyncio
async def test_send_after_close_is_dropped():
    session = CallSession("call-1")
    channel = FakeChannel()
    session.attach_channel(channel)
    await session.close_channel()

    assert await session.create_response("hello") is False
    assert channel.sent == []


@pytest.mark.asyncio
async def test_outbound_message_shapes(live_session, fake_channel):
    await live_session.append_audio("AAAA")
    await live_session.commit_input()
    await live_session.create_response()
    await live_session.create_response("Greet the caller")
    await live_session.send_tool_output("tc-1", '{"ok": true}')

    assert fake_channel.sent == [
        {"type": "input_audio_buffer.append", "audio": "AAAA"},
        {"type": "input_audio_buffer.commit"},
        {"type": "response.create"},
        {"type": "response.create", "response": {"instructions": "Greet the caller"}},
        {
            "type": "conversation.item.create",
            "item": {"type": "function_call_output", "call_id": "tc-1", "output": '{"ok": true}'},
        },
    ]


def test_summary(live_session):
    summary = live_session.summary()
    assert summary["call_id"] == "call-123"
    assert summary["status"] == "live"
    assert summary["from"] == "+15550100"
    assert summary["provider"] == "openai-sip"

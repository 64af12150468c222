"""
Unit tests for tool-call accumulation and dispatch.
"""

import json
from unittest.mock import AsyncMock

import pytest

from callbridge.bot.tool_calls import (
    ToolCallAccumulator,
    fragment_from_event,
    is_final,
    parse_arguments,
)
from callbridge.config.constants import TOOL_FAILURE_APOLOGY
from callbridge.models.tool_schemas import ToolDefinition, ToolResult
from callbridge.tools.registry import ToolRegistry


def make_registry(name="lookup", handler=None):
    registry = ToolRegistry()
    registry.register(ToolDefinition(
        name=name,
        description="test tool",
        parameters={"type": "object", "properties": {}},
        handler=handler or AsyncMock(return_value=ToolResult(message="Say done")),
    ))
    registry.freeze()
    return registry


@pytest.mark.asyncio
async def test_fragments_accumulate_in_order_and_finalize_once(live_session, fake_channel):
    handler = AsyncMock(return_value=ToolResult(message="Tell them it is sunny", data={"forecast": "sun"}))
    accumulator = ToolCallAccumulator(live_session, make_registry("weather", handler))

    await accumulator.handle_fragment({"id": "tc-1", "name": "weather", "arguments": '{"ci'})
    await accumulator.handle_fragment({"id": "tc-1", "arguments": 'ty": "Oslo"}'})
    result = await accumulator.handle_fragment({"id": "tc-1", "done": True})
    again = await accumulator.handle_fragment({"id": "tc-1", "status": "completed"})

    handler.assert_awaited_once_with(live_session, {"city": "Oslo"})
    assert result.message == "Tell them it is sunny"
    assert again is None
    assert "tc-1" not in live_session.pending_tool_calls
    assert fake_channel.sent_types() == ["conversation.item.create", "response.create"]
    output = json.loads(fake_channel.sent[0]["item"]["output"])
    assert output == {"ok": True, "forecast": "sun"}
    assert fake_channel.sent[0]["item"]["call_id"] == "tc-1"
    assert fake_channel.sent[1]["response"]["instructions"] == "Tell them it is sunny"


@pytest.mark.asyncio
async def test_realtime_events_dispatch_exactly_once(live_session, fake_channel):
    """Arguments done followed by output item done runs the handler once."""
    handler = AsyncMock(return_value=ToolResult())
    accumulator = ToolCallAccumulator(live_session, make_registry("lookup", handler))

    await accumulator.handle_event({
        "type": "response.output_item.added",
        "item": {"type": "function_call", "id": "item-1", "call_id": "tc-9", "name": "lookup",
                 "status": "in_progress", "arguments": ""},
    })
    await accumulator.handle_event({
        "type": "response.function_call_arguments.delta", "item_id": "item-1", "call_id": "tc-9",
        "delta": '{"q": ',
    })
    await accumulator.handle_event({
        "type": "response.function_call_arguments.delta", "item_id": "item-1", "call_id": "tc-9",
        "delta": '"x"}',
    })
    await accumulator.handle_event({
        "type": "response.function_call_arguments.done", "item_id": "item-1", "call_id": "tc-9",
        "name": "lookup", "arguments": '{"q": "x"}',
    })
    await accumulator.handle_event({
        "type": "response.output_item.done",
        "item": {"type": "function_call", "id": "item-1", "call_id": "tc-9", "name": "lookup",
                 "status": "completed", "arguments": '{"q": "x"}'},
    })

    handler.assert_awaited_once_with(live_session, {"q": "x"})
    # No message on the result: only the tool output is sent
    assert fake_channel.sent_types() == ["conversation.item.create"]


@pytest.mark.asyncio
async def test_fragment_resolved_by_item_id(live_session):
    handler = AsyncMock(return_value=ToolResult())
    accumulator = ToolCallAccumulator(live_session, make_registry("lookup", handler))

    await accumulator.handle_fragment({"id": "tc-2", "item_id": "item-2", "name": "lookup"})
    await accumulator.handle_fragment({"item_id": "item-2", "arguments": "{}"})
    assert live_session.pending_tool_calls["tc-2"].arguments_buffer == "{}"


@pytest.mark.asyncio
async def test_finalize_unknown_id_is_noop(live_session, fake_channel):
    accumulator = ToolCallAccumulator(live_session, make_registry())
    assert await accumulator.finalize("missing") is None
    assert fake_channel.sent == []


@pytest.mark.asyncio
async def test_unregistered_tool_sends_nothing(live_session, fake_channel):
    """transfer_to_human without a transfer capability is dropped silently."""
    accumulator = ToolCallAccumulator(live_session, make_registry("end_call"))

    result = await accumulator.handle_fragment({
        "id": "tc-3", "name": "transfer_to_human", "arguments": "{}", "done": True,
    })

    assert result is None
    assert fake_channel.sent == []
    assert "tc-3" not in live_session.pending_tool_calls
    assert "tc-3" in live_session.completed_tool_calls


@pytest.mark.asyncio
async def test_handler_exception_sends_apology(live_session, fake_channel):
    handler = AsyncMock(side_effect=RuntimeError("boom"))
    accumulator = ToolCallAccumulator(live_session, make_registry("lookup", handler))

    result = await accumulator.handle_fragment({"id": "tc-4", "name": "lookup", "done": True})

    assert result.ok is False
    assert fake_channel.sent_types() == ["conversation.item.create", "response.create"]
    assert json.loads(fake_channel.sent[0]["item"]["output"]) == {"ok": False}
    assert fake_channel.sent[1]["response"]["instructions"] == TOOL_FAILURE_APOLOGY
    assert live_session.status.value == "live"


@pytest.mark.asyncio
async def test_malformed_arguments_passed_as_raw(live_session):
    handler = AsyncMock(return_value=ToolResult())
    accumulator = ToolCallAccumulator(live_session, make_registry("lookup", handler))

    await accumulator.handle_fragment({"id": "tc-5", "name": "lookup", "arguments": "{not json", "done": True})

    handler.assert_awaited_once_with(live_session, {"raw": "{not json"})


@pytest.mark.asyncio
async def test_final_arguments_take_precedence_over_buffer(live_session):
    handler = AsyncMock(return_value=ToolResult())
    accumulator = ToolCallAccumulator(live_session, make_registry("lookup", handler))

    await accumulator.handle_fragment({"id": "tc-6", "name": "lookup", "arguments": '{"a": 1}'})
    await accumulator.handle_fragment({"id": "tc-6", "final_arguments": '{"a": 1}', "done": True})

    handler.assert_awaited_once_with(live_session, {"a": 1})


@pytest.mark.asyncio
async def test_fragment_without_id_is_dropped(live_session):
    accumulator = ToolCallAccumulator(live_session, make_registry())
    assert await accumulator.handle_fragment({"arguments": "{}"}) is None
    assert live_session.pending_tool_calls == {}


@pytest.mark.parametrize(
    "fragment,expected",
    [
        ({"status": "completed"}, True),
        ({"completed": True}, True),
        ({"is_final": True}, True),
        ({"done": True}, True),
        ({"status": "in_progress"}, False),
        ({"done": "yes"}, False),
        ({}, False),
    ],
)
def test_is_final(fragment, expected):
    assert is_final(fragment) is expected


@pytest.mark.parametrize(
    "buffer,expected",
    [
        ("", {}),
        ("   ", {}),
        ('{"x": 1}', {"x": 1}),
        ("[1, 2]", {"raw": "[1, 2]"}),
        ("nope", {"raw": "nope"}),
    ],
)
def test_parse_arguments(buffer, expected):
    assert parse_arguments(buffer) == expected


def test_non_function_output_item_is_ignored():
    assert fragment_from_event({"type": "response.output_item.added", "item": {"type": "message"}}) is None
    assert fragment_from_event({"type": "session.updated"}) is None

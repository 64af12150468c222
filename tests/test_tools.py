from unittest.mock import AsyncMock

import pytest

from callbridge.models.call_session import CallSession
from callbridge.models.tool_schemas import ToolDefinition, ToolResult
from callbridge.services.human_transfer import HumanTransferService
from callbridge.tools import create_tool_registry
from callbridge.tools.end_call import handle_end_call
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.transfer import DEFAULT_CONFIRMATION, build_transfer_tool


def noop_tool(name):
    return ToolDefinition(name=name, description="", parameters={"type": "object"}, handler=AsyncMock())


def test_registry_lookup_and_schema():
    registry = ToolRegistry()
    registry.register(noop_tool("a"))
    registry.register(noop_tool("b"))

    assert registry.names() == ["a", "b"]
    assert "a" in registry
    assert len(registry) == 2
    assert registry.get("missing") is None
    assert registry.get(None) is None
    assert registry.to_realtime_schema()[0] == {
        "type": "function", "name": "a", "description": "", "parameters": {"type": "object"},
    }


def test_frozen_registry_rejects_registration():
    registry = ToolRegistry()
    registry.freeze()
    assert registry.frozen
    with pytest.raises(RuntimeError):
        registry.register(noop_tool("late"))


def test_default_registry_has_only_end_call():
    registry = create_tool_registry()
    assert registry.names() == ["end_call"]
    assert registry.frozen


def test_registry_with_transfer():
    registry = create_tool_registry(AsyncMock(spec=HumanTransferService))
    assert registry.names() == ["end_call", "transfer_to_human"]


@pytest.mark.asyncio
async def test_transfer_tool_handler():
    service = AsyncMock(spec=HumanTransferService)
    service.transfer.return_value = {"participant_call_sid": "CA1", "target": "+15550123"}
    tool = build_transfer_tool(service)
    session = CallSession("rtc_1")

    result = await tool.handler(session, {"reason": "wants a person"})

    service.transfer.assert_awaited_once_with(session, reason="wants a person")
    assert result == ToolResult(
        message=DEFAULT_CONFIRMATION,
        transcript_note="Transfer to +15550123 started",
        data={"participant_call_sid": "CA1", "target": "+15550123"},
    )


@pytest.mark.asyncio
async def test_end_call_handler():
    result = await handle_end_call(CallSession("rtc_1"), {"farewell_message": "Bye now"})
    assert result.will_hangup is True
    assert "Bye now" in result.message

    result = await handle_end_call(CallSession("rtc_1"), {})
    assert result.will_hangup is True
    assert result.message

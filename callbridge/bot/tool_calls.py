"""
Tool-call accumulation and dispatch.

Function-call arguments arrive from the realtime service as string fragments
spread over several events, and the same call may be reported complete more
than once (an arguments "done" event and an output-item "done" event). The
``ToolCallAccumulator`` assembles each call's arguments in arrival order,
dispatches it to the registered handler exactly once, and reports the
outcome back into the channel.
"""

import json
import logging
from typing import Any, Dict, Optional

from callbridge.config.constants import (
    EVENT_FUNCTION_ARGUMENTS_DELTA,
    EVENT_FUNCTION_ARGUMENTS_DONE,
    EVENT_OUTPUT_ITEM_ADDED,
    EVENT_OUTPUT_ITEM_DONE,
    LOGGER_NAME,
    TOOL_FAILURE_APOLOGY,
)
from callbridge.models.call_session import CallSession
from callbridge.models.tool_schemas import ToolCallAccumulation, ToolResult
from callbridge.tools.registry import ToolRegistry

logger = logging.getLogger(LOGGER_NAME)

TOOL_CALL_EVENTS = {
    EVENT_FUNCTION_ARGUMENTS_DELTA,
    EVENT_FUNCTION_ARGUMENTS_DONE,
    EVENT_OUTPUT_ITEM_ADDED,
    EVENT_OUTPUT_ITEM_DONE,
}


def is_final(fragment: Dict[str, Any]) -> bool:
    """Any one of the provider's completion markers finalizes the call."""
    return (
        fragment.get("status") == "completed"
        or fragment.get("completed") is True
        or fragment.get("is_final") is True
        or fragment.get("done") is True
    )


def serialize_arguments(value: Any) -> str:
    """Render an arguments fragment as the string that gets appended."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def parse_arguments(buffer: str) -> Dict[str, Any]:
    """Parse accumulated arguments, falling back to ``{"raw": buffer}``."""
    if not buffer.strip():
        return {}
    try:
        parsed = json.loads(buffer)
    except json.JSONDecodeError:
        return {"raw": buffer}
    if not isinstance(parsed, dict):
        return {"raw": buffer}
    return parsed


def fragment_from_event(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Convert a realtime tool-call event into an accumulator fragment.

    Completion events carry the full argument string, which is kept as
    ``final_arguments`` rather than appended, so the buffer is not doubled.
    """
    event_type = event.get("type")
    if event_type == EVENT_FUNCTION_ARGUMENTS_DELTA:
        return {
            "id": event.get("call_id"),
            "item_id": event.get("item_id"),
            "arguments": event.get("delta"),
        }
    if event_type == EVENT_FUNCTION_ARGUMENTS_DONE:
        return {
            "id": event.get("call_id"),
            "item_id": event.get("item_id"),
            "name": event.get("name"),
            "final_arguments": event.get("arguments"),
            "done": True,
        }
    if event_type in (EVENT_OUTPUT_ITEM_ADDED, EVENT_OUTPUT_ITEM_DONE):
        item = event.get("item") or {}
        if item.get("type") != "function_call":
            return None
        fragment = {
            "id": item.get("call_id"),
            "item_id": item.get("id"),
            "name": item.get("name"),
            "status": item.get("status"),
        }
        if event_type == EVENT_OUTPUT_ITEM_ADDED:
            fragment["arguments"] = item.get("arguments")
        else:
            fragment["final_arguments"] = item.get("arguments")
        return fragment
    return None


class ToolCallAccumulator:
    """Assembles and dispatches the tool calls of one session."""

    def __init__(self, session: CallSession, tools: ToolRegistry):
        self.session = session
        self.tools = tools
        self._item_ids: Dict[str, str] = {}

    async def handle_event(self, event: Dict[str, Any]) -> Optional[ToolResult]:
        fragment = fragment_from_event(event)
        if fragment is None:
            return None
        return await self.handle_fragment(fragment)

    async def handle_fragment(self, fragment: Dict[str, Any]) -> Optional[ToolResult]:
        """
        Merge one fragment and finalize if it carries a completion marker.

        Returns:
            The handler's result when this fragment completed a call, otherwise None
        """
        tool_call_id = self._resolve_id(fragment)
        if not tool_call_id:
            logger.debug(f"Dropping tool-call fragment without an id: {fragment}")
            return None
        if tool_call_id in self.session.completed_tool_calls:
            logger.debug(f"Ignoring fragment for finished tool call {tool_call_id}")
            return None

        pending = self.session.pending_tool_calls
        accumulation = pending.get(tool_call_id)
        if accumulation is None:
            accumulation = ToolCallAccumulation(id=tool_call_id, item_id=fragment.get("item_id"))
            pending[tool_call_id] = accumulation

        if fragment.get("name"):
            accumulation.name = fragment["name"]
        accumulation.arguments_buffer += serialize_arguments(fragment.get("arguments"))
        if fragment.get("final_arguments") is not None:
            accumulation.final_arguments = serialize_arguments(fragment["final_arguments"])

        if is_final(fragment):
            return await self.finalize(tool_call_id)
        return None

    def _resolve_id(self, fragment: Dict[str, Any]) -> Optional[str]:
        tool_call_id = fragment.get("id")
        item_id = fragment.get("item_id")
        if tool_call_id and item_id:
            self._item_ids[item_id] = tool_call_id
        if not tool_call_id and item_id:
            tool_call_id = self._item_ids.get(item_id)
        return tool_call_id

    async def finalize(self, tool_call_id: str) -> Optional[ToolResult]:
        """
        Complete a tool call and run its handler.

        Finalizing an id that is not pending is a no-op. Handler exceptions are
        turned into a spoken apology; the session carries on.
        """
        accumulation = self.session.pending_tool_calls.pop(tool_call_id, None)
        if accumulation is None:
            logger.debug(f"Finalize for unknown tool call {tool_call_id} ignored")
            return None
        accumulation.completed = True
        self.session.completed_tool_calls.add(tool_call_id)

        raw_arguments = accumulation.final_arguments or accumulation.arguments_buffer
        arguments = parse_arguments(raw_arguments)

        tool = self.tools.get(accumulation.name)
        if tool is None:
            logger.warning(
                f"Call {self.session.call_id}: no tool registered for "
                f"{accumulation.name!r} (tool call {tool_call_id}); dropping"
            )
            return None

        logger.info(f"Call {self.session.call_id}: invoking {tool.name} with {arguments}")
        try:
            result = await tool.handler(self.session, arguments)
        except Exception as e:
            logger.error(
                f"Call {self.session.call_id}: tool {tool.name} failed: {e}", exc_info=True
            )
            await self.session.send_tool_output(tool_call_id, json.dumps({"ok": False}))
            await self.session.create_response(TOOL_FAILURE_APOLOGY)
            return ToolResult(ok=False, message=TOOL_FAILURE_APOLOGY)

        if result is None:
            result = ToolResult()
        await self.session.send_tool_output(
            tool_call_id, json.dumps({"ok": result.ok, **result.data})
        )
        if result.message:
            await self.session.create_response(result.message)
        return result

"""
end_call - let the agent hang up once the conversation is finished.
"""

import logging
from typing import Any, Dict

from callbridge.config.constants import LOGGER_NAME
from callbridge.models.call_session import CallSession
from callbridge.models.tool_schemas import ToolDefinition, ToolResult

logger = logging.getLogger(LOGGER_NAME)

TOOL_NAME = "end_call"

DEFAULT_FAREWELL = "Thank the caller and say goodbye briefly."


async def handle_end_call(session: CallSession, arguments: Dict[str, Any]) -> ToolResult:
    farewell = arguments.get("farewell_message")
    logger.info(f"Call {session.call_id}: agent requested hangup")
    return ToolResult(
        message=f"Say this farewell to the caller: {farewell}" if farewell else DEFAULT_FAREWELL,
        will_hangup=True,
    )


def build_end_call_tool() -> ToolDefinition:
    return ToolDefinition(
        name=TOOL_NAME,
        description=(
            "End the call after a short farewell. Use when the caller says goodbye "
            "or confirms there is nothing else you can help with."
        ),
        parameters={
            "type": "object",
            "properties": {
                "farewell_message": {
                    "type": "string",
                    "description": "Farewell to speak before hanging up.",
                }
            },
            "required": [],
        },
        handler=handle_end_call,
    )

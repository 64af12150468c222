"""
transfer_to_human - bring a human agent into the current call.

Only registered when a human-transfer capability is configured.
"""

import logging
from typing import Any, Dict, Optional

from callbridge.config.constants import LOGGER_NAME
from callbridge.models.call_session import CallSession
from callbridge.models.tool_schemas import ToolDefinition, ToolResult
from callbridge.services.human_transfer import HumanTransferService

logger = logging.getLogger(LOGGER_NAME)

TOOL_NAME = "transfer_to_human"

DEFAULT_CONFIRMATION = (
    "Tell the caller you are connecting them with a member of the team now "
    "and that they should stay on the line."
)


def build_transfer_tool(
    service: HumanTransferService,
    confirmation: Optional[str] = DEFAULT_CONFIRMATION,
) -> ToolDefinition:
    """Create the tool definition bound to ``service``."""

    async def handle(session: CallSession, arguments: Dict[str, Any]) -> ToolResult:
        reason = arguments.get("reason")
        details = await service.transfer(session, reason=reason)
        logger.info(f"Call {session.call_id}: human transfer started")
        return ToolResult(
            message=confirmation,
            transcript_note=f"Transfer to {details['target']} started",
            data=details,
        )

    return ToolDefinition(
        name=TOOL_NAME,
        description=(
            "Bring a human member of staff into this call. Use when the caller asks "
            "for a person, or when you cannot resolve their request."
        ),
        parameters={
            "type": "object",
            "properties": {
                "reason": {
                    "type": "string",
                    "description": "Short summary of why the caller needs a human.",
                }
            },
            "required": [],
        },
        handler=handle,
    )

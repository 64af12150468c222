"""
Tools the voice agent can call during a conversation.

Key components:
- registry: ``ToolRegistry``, populated at startup and read-only afterwards.
- transfer: ``transfer_to_human``, registered when Twilio transfer is configured.
- end_call: ``end_call``, always available.
"""

import logging
from typing import Optional

from callbridge.config.constants import LOGGER_NAME
from callbridge.services.human_transfer import HumanTransferService
from callbridge.tools.end_call import build_end_call_tool
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.transfer import build_transfer_tool

logger = logging.getLogger(LOGGER_NAME)


def create_tool_registry(transfer_service: Optional[HumanTransferService] = None) -> ToolRegistry:
    """Register the built-in tools and freeze the registry."""
    registry = ToolRegistry()
    registry.register(build_end_call_tool())
    if transfer_service is not None:
        registry.register(build_transfer_tool(transfer_service))
    else:
        logger.info("Human transfer not configured; transfer_to_human unavailable")
    registry.freeze()
    return registry


__all__ = ["ToolRegistry", "create_tool_registry"]

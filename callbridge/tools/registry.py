"""
Tool registry - the capabilities the voice agent may invoke.

The registry is populated once at startup and only read afterwards, so lookups
need no locking. An empty registry disables tool use entirely.
"""

import logging
from typing import Any, Dict, List, Optional

from callbridge.config.constants import LOGGER_NAME
from callbridge.models.tool_schemas import ToolDefinition

logger = logging.getLogger(LOGGER_NAME)


class ToolRegistry:
    """
    Registry of tool definitions keyed by name.

    Call ``freeze()`` once startup registration is complete; later
    registrations are refused.
    """

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}
        self._frozen = False

    def register(self, definition: ToolDefinition) -> None:
        """
        Register a tool definition.

        Raises:
            RuntimeError: if the registry has been frozen
        """
        if self._frozen:
            raise RuntimeError(f"Tool registry is frozen; cannot register {definition.name}")
        if definition.name in self._tools:
            logger.warning(f"Tool {definition.name} already registered, overwriting")
        self._tools[definition.name] = definition
        logger.info(f"Registered tool: {definition.name}")

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: Optional[str]) -> Optional[ToolDefinition]:
        """
        Get tool by name.

        Returns:
            The definition or None if no tool has that name
        """
        if not name:
            return None
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def to_realtime_schema(self) -> List[Dict[str, Any]]:
        """
        Export all tools in the realtime API's function format.

        Returns:
            List of tool descriptors for the accept payload or session update
        """
        return [tool.to_realtime_schema() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

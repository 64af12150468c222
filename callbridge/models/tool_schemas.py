"""
Tool definitions and in-flight tool-call state.

``ToolDefinition`` describes a capability the voice agent may invoke;
``ToolCallAccumulation`` holds the streamed argument fragments of one
invocation until the provider marks it complete.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from callbridge.models.call_session import CallSession


class ToolResult(BaseModel):
    """Outcome of a tool handler."""

    ok: bool = True
    message: Optional[str] = Field(
        None, description="Instruction spoken back to the caller, if any"
    )
    will_hangup: bool = Field(False, description="End the call once the message has been spoken")
    transcript_note: Optional[str] = Field(
        None, description="Line recorded in the transcript as a system segment"
    )
    data: Dict[str, Any] = Field(default_factory=dict)


ToolHandler = Callable[["CallSession", Dict[str, Any]], Awaitable[Optional[ToolResult]]]


@dataclass(frozen=True)
class ToolDefinition:
    """A named capability exposed to the voice agent."""

    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler

    def to_realtime_schema(self) -> Dict[str, Any]:
        """Export in the realtime API's flat function format."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class ToolCallAccumulation:
    """Arguments of one tool invocation, assembled from streamed fragments."""

    id: str
    name: Optional[str] = None
    arguments_buffer: str = ""
    completed: bool = False
    final_arguments: Optional[str] = None
    item_id: Optional[str] = None

"""
Models module for data structures and state management in the call bridge.

Key components:
- call_session: ``CallSession`` and its one-directional status machine.
- session_registry: the concurrency-safe registry of active sessions.
- transcript: immutable ``TranscriptSegment`` lines and the ``Speaker`` enum.
- tool_schemas: ``ToolDefinition``, ``ToolResult`` and the in-flight
  ``ToolCallAccumulation``.
- message_schemas: pydantic models for webhook events, telephony requests,
  control-plane bodies, telemetry records and Twilio media frames.
"""

from callbridge.models.call_session import CallSession, CallStatus
from callbridge.models.session_registry import SessionRegistry
from callbridge.models.tool_schemas import ToolCallAccumulation, ToolDefinition, ToolResult
from callbridge.models.transcript import Speaker, TranscriptSegment

__all__ = [
    "CallSession",
    "CallStatus",
    "SessionRegistry",
    "Speaker",
    "ToolCallAccumulation",
    "ToolDefinition",
    "ToolResult",
    "TranscriptSegment",
]

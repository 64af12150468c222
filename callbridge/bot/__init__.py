"""
Bot module: the per-call bridge between telephony and the realtime voice-AI service.

Key components:
- RealtimeChannel: WebSocket channel to the realtime service, yielding open,
  message, close and error events in arrival order.
- TranscriptAggregator: turns transcript delta and completion events into
  ordered, sequence-numbered transcript segments.
- ToolCallAccumulator: assembles streamed tool-call arguments and runs each
  tool exactly once.
- CallBridge: drives each call from the incoming signal to termination.
"""

from callbridge.bot.call_bridge import CallBridge
from callbridge.bot.realtime_api import RealtimeChannel
from callbridge.bot.tool_calls import ToolCallAccumulator
from callbridge.bot.transcript import TranscriptAggregator

__all__ = ["CallBridge", "RealtimeChannel", "ToolCallAccumulator", "TranscriptAggregator"]

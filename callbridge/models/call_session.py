"""
Per-call state for the bridge.

A ``CallSession`` owns one call's identity, lifecycle status, transcript
buffers, pending tool calls and the duplex channel to the voice-AI service.
Status only ever moves forward:

    incoming -> live -> ended
    incoming -> failed
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from callbridge.config.constants import (
    LOGGER_NAME,
    MESSAGE_TYPE_INPUT_AUDIO_APPEND,
    MESSAGE_TYPE_INPUT_AUDIO_COMMIT,
    MESSAGE_TYPE_ITEM_CREATE,
    MESSAGE_TYPE_RESPONSE_CREATE,
    UNKNOWN_PARTY,
)
from callbridge.errors import InvalidTransitionError
from callbridge.models.tool_schemas import ToolCallAccumulation
from callbridge.models.transcript import Speaker

logger = logging.getLogger(LOGGER_NAME)

# Callback used by the media-stream relay to push agent audio to the caller
AudioSink = Callable[[str], Awaitable[None]]


class CallStatus(str, Enum):
    """Lifecycle status of a call session."""
    INCOMING = "incoming"
    LIVE = "live"
    ENDED = "ended"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    CallStatus.INCOMING: {CallStatus.LIVE, CallStatus.FAILED},
    CallStatus.LIVE: {CallStatus.ENDED},
    CallStatus.ENDED: set(),
    CallStatus.FAILED: set(),
}

TERMINAL_STATUSES = {CallStatus.ENDED, CallStatus.FAILED}


class CallSession:
    """State of one phone call handled by the bridge."""

    def __init__(
        self,
        call_id: str,
        from_party: Optional[str] = None,
        to_party: Optional[str] = None,
        provider: str = "",
        call_token: Optional[str] = None,
        conference_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.call_id = call_id
        self.from_party = from_party or UNKNOWN_PARTY
        self.to_party = to_party or UNKNOWN_PARTY
        self.provider = provider
        self.call_token = call_token
        self.conference_name = conference_name
        self.metadata: Dict[str, Any] = dict(metadata or {})

        self.status = CallStatus.INCOMING
        self.created_at = time.time()
        self.ended_at: Optional[float] = None
        self.end_reason: Optional[str] = None

        self.transcript_seq = 0
        self.buffers: Dict[Speaker, str] = {Speaker.CALLER: "", Speaker.AGENT: ""}
        self.pending_tool_calls: Dict[str, ToolCallAccumulation] = {}
        self.completed_tool_calls: Set[str] = set()

        self.channel = None
        self._channel_closed = False
        self.audio_sink: Optional[AudioSink] = None
        self.on_terminated: Optional[Callable[[], Awaitable[None]]] = None

    def __repr__(self) -> str:
        return f"CallSession(call_id={self.call_id!r}, status={self.status.value})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, new_status: CallStatus) -> None:
        """
        Move to ``new_status``.

        Raises:
            InvalidTransitionError: if the move is not allowed from the current status
        """
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.call_id, self.status.value, new_status.value)
        logger.info(f"Call {self.call_id}: {self.status.value} -> {new_status.value}")
        self.status = new_status
        if new_status in TERMINAL_STATUSES:
            self.ended_at = time.time()

    def terminate(self, reason: str) -> bool:
        """
        Move the session into its terminal status.

        A live session ends; a session that never went live fails. Calling
        this on a session that is already terminal does nothing.

        Returns:
            True if this call performed the termination, False if it was a no-op
        """
        if self.is_terminal:
            return False
        target = CallStatus.ENDED if self.status == CallStatus.LIVE else CallStatus.FAILED
        self.transition(target)
        self.end_reason = reason
        return True

    def next_seq(self) -> int:
        self.transcript_seq += 1
        return self.transcript_seq

    # Duplex channel

    def attach_channel(self, channel) -> None:
        self.channel = channel
        self._channel_closed = False

    @property
    def channel_open(self) -> bool:
        return self.channel is not None and not self._channel_closed

    async def close_channel(self) -> None:
        """Close the duplex channel; later calls are no-ops."""
        if self.channel is None or self._channel_closed:
            return
        self._channel_closed = True
        try:
            await self.channel.close()
        except Exception as e:
            logger.warning(f"Error closing channel for call {self.call_id}: {e}")

    async def send(self, message: Dict[str, Any]) -> bool:
        """Send a message into the duplex channel if it is open."""
        if not self.channel_open:
            logger.debug(f"Dropping {message.get('type')} for call {self.call_id}: channel not open")
            return False
        return await self.channel.send_json(message)

    async def create_response(self, instructions: Optional[str] = None) -> bool:
        message: Dict[str, Any] = {"type": MESSAGE_TYPE_RESPONSE_CREATE}
        if instructions:
            message["response"] = {"instructions": instructions}
        return await self.send(message)

    async def append_audio(self, audio_base64: str) -> bool:
        return await self.send({"type": MESSAGE_TYPE_INPUT_AUDIO_APPEND, "audio": audio_base64})

    async def commit_input(self) -> bool:
        return await self.send({"type": MESSAGE_TYPE_INPUT_AUDIO_COMMIT})

    async def send_tool_output(self, tool_call_id: str, output: str) -> bool:
        return await self.send({
            "type": MESSAGE_TYPE_ITEM_CREATE,
            "item": {"type": "function_call_output", "call_id": tool_call_id, "output": output},
        })

    def summary(self) -> Dict[str, Any]:
        """Operator-facing view of the session."""
        return {
            "call_id": self.call_id,
            "status": self.status.value,
            "from": self.from_party,
            "to": self.to_party,
            "provider": self.provider,
            "created_at": self.created_at,
            "ended_at": self.ended_at,
            "last_seq": self.transcript_seq,
        }

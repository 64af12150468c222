"""
Bridge controller: drives each call from the incoming signal to termination.

For every call the controller:
- drops duplicate incoming signals before any side effect,
- creates a ``CallSession``, registers it and accepts the call with the
  telephony collaborator,
- opens the duplex channel to the realtime service after a short delay and
  processes its events strictly in order,
- feeds transcript events to a ``TranscriptAggregator`` and tool-call events
  to a ``ToolCallAccumulator``,
- terminates the session idempotently on channel close or error, provider
  termination, operator hangup or an agent-initiated hangup.

Telemetry is published at each milestone without waiting for it.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from callbridge.bot.realtime_api import (
    ChannelClosed,
    ChannelError,
    ChannelEvent,
    ChannelMessage,
    ChannelOpen,
    RealtimeChannel,
)
from callbridge.bot.tool_calls import TOOL_CALL_EVENTS, ToolCallAccumulator
from callbridge.bot.transcript import FragmentKind, TranscriptAggregator, classify
from callbridge.config.constants import (
    EVENT_AUDIO_DELTA,
    EVENT_ERROR,
    EVENT_OUTPUT_AUDIO_DELTA,
    LOGGER_NAME,
    MEDIA_STREAM_PROVIDER,
    MESSAGE_TYPE_SESSION_UPDATE,
)
from callbridge.config.settings import BridgeSettings
from callbridge.errors import CallAcceptError
from callbridge.models.call_session import AudioSink, CallSession, CallStatus
from callbridge.models.message_schemas import (
    AcceptPayload,
    AudioConfig,
    AudioOutputConfig,
    IncomingCall,
)
from callbridge.models.session_registry import SessionRegistry
from callbridge.models.tool_schemas import ToolResult
from callbridge.services.background import BackgroundTasks
from callbridge.services.telemetry import TelemetrySink
from callbridge.services.telephony_client import TelephonyClient
from callbridge.tools.registry import ToolRegistry

logger = logging.getLogger(LOGGER_NAME)

# Time allowed for the farewell before an agent-requested hangup
AGENT_HANGUP_DELAY_S = 4.0

ChannelFactory = Callable[[CallSession], RealtimeChannel]


class SessionRelay:
    """The per-call processors fed by the channel event loop."""

    def __init__(self, session: CallSession, transcript: TranscriptAggregator,
                 tool_calls: ToolCallAccumulator):
        self.session = session
        self.transcript = transcript
        self.tool_calls = tool_calls


class CallBridge:
    """
    Orchestrates the lifecycle of every call.

    Owns the session registry for the process; the tool registry is shared
    read-only.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        sessions: SessionRegistry,
        tools: ToolRegistry,
        telephony: TelephonyClient,
        telemetry: TelemetrySink,
        channel_factory: Optional[ChannelFactory] = None,
        instructions: Optional[str] = None,
    ):
        self.settings = settings
        self.sessions = sessions
        self.tools = tools
        self.telephony = telephony
        self.telemetry = telemetry
        self.channel_factory = channel_factory or self._default_channel
        self.instructions = instructions or settings.load_instructions()
        self.relays: Dict[str, SessionRelay] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._background = BackgroundTasks("bridge")
        self._accepting = True

    @property
    def accepting(self) -> bool:
        return self._accepting

    def _default_channel(self, session: CallSession) -> RealtimeChannel:
        if session.provider == MEDIA_STREAM_PROVIDER:
            return RealtimeChannel.for_model(
                self.settings.realtime_ws_url, self.settings.openai_api_key, self.settings.model
            )
        return RealtimeChannel.for_call(
            self.settings.realtime_ws_url, self.settings.openai_api_key, session.call_id
        )

    def build_accept_payload(self) -> AcceptPayload:
        tools = self.tools.to_realtime_schema()
        return AcceptPayload(
            model=self.settings.model,
            instructions=self.instructions,
            audio=AudioConfig(output=AudioOutputConfig(voice=self.settings.voice)),
            tools=tools or None,
        )

    def build_session_update(self) -> Dict[str, Any]:
        """Session configuration for channels that were not accepted over SIP."""
        session: Dict[str, Any] = {
            "type": "realtime",
            "model": self.settings.model,
            "instructions": self.instructions,
            "audio": {
                "input": {"format": {"type": "audio/pcmu"}, "turn_detection": {"type": "server_vad"}},
                "output": {"format": {"type": "audio/pcmu"}, "voice": self.settings.voice},
            },
        }
        tools = self.tools.to_realtime_schema()
        if tools:
            session["tools"] = tools
        return {"type": MESSAGE_TYPE_SESSION_UPDATE, "session": session}

    def _create_session(self, call_id: str, provider: str, **identity) -> CallSession:
        session = CallSession(call_id, provider=provider, **identity)
        self.relays[call_id] = SessionRelay(
            session,
            TranscriptAggregator(session, on_segment=self.telemetry.transcript_segment),
            ToolCallAccumulator(session, self.tools),
        )
        self.sessions.add(session)
        self.telemetry.call_started(session)
        return session

    async def handle_incoming_call(self, call: IncomingCall) -> Optional[CallSession]:
        """
        Accept an incoming call and start relaying it.

        Returns:
            The new session, or None when the signal was a duplicate or the
            bridge is shutting down

        Raises:
            CallAcceptError: if the provider rejected the accept request
        """
        if not self._accepting:
            logger.warning(f"Rejecting call {call.call_id}: bridge is shutting down")
            await self.telephony.reject(call.call_id, status_code=503)
            return None

        if not self.sessions.reserve(call.call_id):
            logger.info(f"Duplicate incoming signal for call {call.call_id}; ignoring")
            return None

        try:
            session = self._create_session(
                call.call_id,
                self.settings.provider,
                from_party=call.from_party,
                to_party=call.to_party,
                call_token=call.call_token,
                conference_name=call.conference_name,
                metadata=call.metadata,
            )
            try:
                await self.telephony.accept(call.call_id, self.build_accept_payload())
            except CallAcceptError as e:
                logger.error(f"Accept failed for call {call.call_id}: {e}")
                session.terminate("accept_failed")
                self.telemetry.call_status(session, reason="accept_failed")
                self._forget(call.call_id)
                raise
        finally:
            self.sessions.release(call.call_id)

        self._start(session)
        return session

    async def start_media_session(
        self,
        stream_sid: str,
        from_party: Optional[str],
        to_party: Optional[str],
        audio_sink: AudioSink,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[CallSession]:
        """Start a session for a Twilio media stream; no accept handshake applies."""
        if not self._accepting or not self.sessions.reserve(stream_sid):
            return None
        try:
            session = self._create_session(
                stream_sid,
                MEDIA_STREAM_PROVIDER,
                from_party=from_party,
                to_party=to_party,
                metadata=metadata,
            )
            session.audio_sink = audio_sink
        finally:
            self.sessions.release(stream_sid)
        self._start(session, self.build_session_update())
        return session

    def _start(self, session: CallSession, session_update: Optional[Dict[str, Any]] = None) -> None:
        self._tasks[session.call_id] = asyncio.create_task(self.run_session(session, session_update))

    async def run_session(self, session: CallSession, session_update: Optional[Dict[str, Any]] = None) -> None:
        """Open the channel and process its events in arrival order."""
        try:
            await asyncio.sleep(self.settings.connect_delay_s)
            if session.is_terminal:
                return
            channel = self.channel_factory(session)
            session.attach_channel(channel)
            async for event in channel.events():
                await self.handle_channel_event(session, event, session_update)
                if session.is_terminal:
                    break
        except asyncio.CancelledError:
            logger.info(f"Session task cancelled for call {session.call_id}")
            raise
        except Exception as e:
            logger.error(f"Error running session for call {session.call_id}: {e}", exc_info=True)
            await self.end_session(session, "bridge_error")
        finally:
            self._tasks.pop(session.call_id, None)
            if not session.is_terminal:
                await self.end_session(session, "channel_closed")

    async def handle_channel_event(
        self,
        session: CallSession,
        event: ChannelEvent,
        session_update: Optional[Dict[str, Any]] = None,
    ) -> None:
        if isinstance(event, ChannelOpen):
            if session.is_terminal:
                return
            session.transition(CallStatus.LIVE)
            self.telemetry.call_status(session)
            if session_update is not None:
                await session.send(session_update)
            if self.settings.greeting:
                await session.create_response(self.settings.greeting)
        elif isinstance(event, ChannelMessage):
            await self.handle_realtime_message(session, event.payload)
        elif isinstance(event, ChannelClosed):
            logger.info(f"Channel closed for call {session.call_id}: {event.code} {event.reason}")
            await self.end_session(session, "channel_closed")
        elif isinstance(event, ChannelError):
            logger.warning(f"Channel error for call {session.call_id}: {event.cause}")
            await self.end_session(session, "channel_error")

    async def handle_realtime_message(self, session: CallSession, payload: Dict[str, Any]) -> None:
        """Route one realtime event to the transcript or tool-call processor."""
        relay = self.relays.get(session.call_id)
        if relay is None or session.is_terminal:
            return
        event_type = payload.get("type")

        _, kind = classify(event_type)
        if kind != FragmentKind.UNRELATED:
            relay.transcript.handle_event(payload)
        elif event_type in TOOL_CALL_EVENTS:
            result = await relay.tool_calls.handle_event(payload)
            if result is not None:
                self._after_tool(session, relay, result)
        elif event_type in (EVENT_OUTPUT_AUDIO_DELTA, EVENT_AUDIO_DELTA):
            if session.audio_sink is not None and payload.get("delta"):
                await session.audio_sink(payload["delta"])
        elif event_type == EVENT_ERROR:
            logger.error(f"Realtime error for call {session.call_id}: {payload.get('error')}")
        else:
            logger.debug(f"Call {session.call_id}: unhandled event {event_type}")

    def _after_tool(self, session: CallSession, relay: SessionRelay, result: ToolResult) -> None:
        if result.transcript_note:
            relay.transcript.add_system_line(result.transcript_note)
        if result.will_hangup:
            self._background.spawn(self._hangup_after_farewell(session))

    async def _hangup_after_farewell(self, session: CallSession) -> None:
        await asyncio.sleep(AGENT_HANGUP_DELAY_S)
        if session.is_terminal:
            return
        if session.provider != MEDIA_STREAM_PROVIDER:
            await self.telephony.hangup(session.call_id)
        await self.end_session(session, "agent_hangup")

    async def end_session(self, session: CallSession, reason: str) -> bool:
        """
        Terminate a session, deregister it and close its channel.

        Returns:
            False if the session was already terminated (nothing was done)
        """
        if not session.terminate(reason):
            return False
        logger.info(f"Call {session.call_id} {session.status.value} ({reason})")
        self.telemetry.call_status(session, reason=reason)
        self._forget(session.call_id)
        await session.close_channel()
        if session.on_terminated is not None:
            try:
                await session.on_terminated()
            except Exception as e:
                logger.warning(f"Error in termination hook for call {session.call_id}: {e}")
        return True

    def _forget(self, call_id: str) -> None:
        self.sessions.remove(call_id)
        self.relays.pop(call_id, None)

    async def shutdown(self) -> None:
        """Stop accepting calls and end every active session."""
        self._accepting = False
        for session in self.sessions.all():
            await self.end_session(session, "shutdown")
        tasks = list(self._tasks.values()) + list(self._background.tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

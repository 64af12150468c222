"""
Relays a Twilio Media Streams WebSocket to the realtime voice-AI service.

Twilio sends JSON text frames with an ``event`` field:
- ``connected``: the socket is up, nothing to do yet
- ``start``: carries the stream sid and caller identity; a call session is
  started for it with a model-keyed realtime channel
- ``media``: base64 G.711 audio from the caller, appended to the input buffer
- ``stop``: the call is over

Agent audio coming back from the realtime service is written to the same
socket as outbound ``media`` frames.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from twilio.twiml.voice_response import Connect, VoiceResponse

from callbridge.bot.call_bridge import CallBridge
from callbridge.config.constants import LOGGER_NAME
from callbridge.models.call_session import CallSession
from callbridge.models.message_schemas import (
    MediaStreamStartMessage,
    OutboundMedia,
    OutboundMediaMessage,
)

logger = logging.getLogger(LOGGER_NAME)

MEDIA_PATH = "/media"


def media_stream_url(public_url: Optional[str], host: Optional[str] = None) -> str:
    """WebSocket URL Twilio should stream the call to."""
    base = (public_url or host or "localhost").strip().rstrip("/")
    for scheme in ("https://", "http://", "wss://", "ws://"):
        if base.startswith(scheme):
            base = base[len(scheme):]
            break
    return f"wss://{base}{MEDIA_PATH}"


def build_twiml(stream_url: str, parameters: Optional[Dict[str, str]] = None) -> str:
    """TwiML that connects the call's audio to the media-stream socket."""
    response = VoiceResponse()
    connect = Connect()
    stream = connect.stream(url=stream_url)
    for name, value in (parameters or {}).items():
        if value:
            stream.parameter(name=name, value=value)
    response.append(connect)
    return str(response)


class MediaStreamManager:
    """Handles Twilio media-stream sockets for the bridge controller."""

    def __init__(self, bridge: CallBridge):
        self.bridge = bridge

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Serve one media-stream socket until Twilio stops the stream or disconnects."""
        await websocket.accept()
        logger.info("Media stream socket connected")
        session: Optional[CallSession] = None

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON media stream frame")
                    continue
                if not isinstance(message, dict):
                    continue

                event = message.get("event")
                if event == "media":
                    if session is not None:
                        payload = (message.get("media") or {}).get("payload")
                        if payload:
                            await session.append_audio(payload)
                elif event == "start":
                    if session is not None:
                        logger.warning(f"Ignoring repeated start on media stream {session.call_id}")
                        continue
                    session = await self.handle_start(message, websocket)
                elif event == "stop":
                    logger.info("Media stream stopped by provider")
                    break
                elif event == "connected":
                    logger.debug("Media stream handshake received")
                else:
                    logger.debug(f"Unhandled media stream event: {event}")
        except WebSocketDisconnect:
            logger.info("Media stream socket disconnected")
        except Exception as e:
            logger.error(f"Error in media stream socket: {e}", exc_info=True)
        finally:
            if session is not None:
                await self.bridge.end_session(session, "provider_stop")

    async def handle_start(self, message: Dict[str, Any], websocket: WebSocket) -> Optional[CallSession]:
        try:
            start = MediaStreamStartMessage(**message).start
        except ValidationError as e:
            logger.error(f"Invalid media stream start event: {e}")
            return None

        stream_sid = start.stream_sid
        params = start.custom_parameters

        async def send_audio(audio_base64: str) -> None:
            outbound = OutboundMediaMessage(
                stream_sid=stream_sid, media=OutboundMedia(payload=audio_base64)
            )
            await websocket.send_text(outbound.model_dump_json(by_alias=True))

        metadata: Dict[str, Any] = {}
        if start.call_sid:
            metadata["provider_call_sid"] = start.call_sid

        session = await self.bridge.start_media_session(
            stream_sid,
            from_party=params.get("from"),
            to_party=params.get("to"),
            audio_sink=send_audio,
            metadata=metadata,
        )
        if session is None:
            logger.warning(f"Media stream {stream_sid} was not started")
            return None

        async def close_socket() -> None:
            try:
                await websocket.close()
            except RuntimeError:
                # Already closed by the peer
                pass

        session.on_terminated = close_socket
        logger.info(f"Media stream {stream_sid} started for {session.from_party}")
        return session

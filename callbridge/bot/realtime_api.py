"""
Duplex channel to the realtime voice-AI service.

A ``RealtimeChannel`` wraps one WebSocket connection and exposes it as an
ordered stream of tagged events: ``ChannelOpen`` once the handshake completes,
``ChannelMessage`` for every JSON event received, then exactly one of
``ChannelClosed`` or ``ChannelError``. The bridge consumes this stream one
event at a time per call, which is what keeps each call's processing ordered.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Union
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from callbridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

CONNECTION_TIMEOUT = 30  # seconds
SEND_TIMEOUT = 5.0  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32
WS_PING_INTERVAL = 5


@dataclass(frozen=True)
class ChannelOpen:
    """The WebSocket handshake completed."""


@dataclass(frozen=True)
class ChannelMessage:
    """A JSON event received from the service."""
    payload: Dict[str, Any]


@dataclass(frozen=True)
class ChannelClosed:
    """The connection closed."""
    code: Optional[int] = None
    reason: str = ""


@dataclass(frozen=True)
class ChannelError:
    """The connection could not be opened or failed."""
    cause: BaseException


ChannelEvent = Union[ChannelOpen, ChannelMessage, ChannelClosed, ChannelError]


class RealtimeChannel:
    """
    One WebSocket connection to the realtime service.

    The connection is opened lazily by ``events()`` and closed at most once.
    """

    def __init__(self, url: str, api_key: str, connect_timeout: float = CONNECTION_TIMEOUT):
        self.url = url
        self.api_key = api_key
        self.connect_timeout = connect_timeout
        self.ws = None
        self._closed = False

    @classmethod
    def for_call(cls, base_url: str, api_key: str, call_id: str) -> "RealtimeChannel":
        """Channel attached to a call that was accepted over SIP."""
        return cls(f"{base_url}?call_id={quote(call_id)}", api_key)

    @classmethod
    def for_model(cls, base_url: str, api_key: str, model: str) -> "RealtimeChannel":
        """Fresh session with ``model``, configured by the caller after open."""
        return cls(f"{base_url}?model={quote(model)}", api_key)

    @property
    def is_open(self) -> bool:
        return self.ws is not None and not self._closed

    async def events(self) -> AsyncIterator[ChannelEvent]:
        """Connect and yield channel events until the connection ends."""
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            logger.debug(f"Connecting realtime channel: {self.url}")
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout while connecting realtime channel (after {self.connect_timeout}s)")
            yield ChannelError(e)
            return
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect realtime channel: {e}")
            yield ChannelError(e)
            return

        if self._closed:
            await self.ws.close()
            yield ChannelClosed(reason="closed before open")
            return

        yield ChannelOpen()

        try:
            async for raw in self.ws:
                if isinstance(raw, bytes):
                    logger.debug(f"Ignoring binary frame of {len(raw)} bytes")
                    continue
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON: {raw[:100]}...")
                    continue
                if not isinstance(payload, dict):
                    logger.warning(f"Ignoring non-object event: {raw[:100]}")
                    continue
                yield ChannelMessage(payload)
        except ConnectionClosedError as e:
            code = e.rcvd.code if e.rcvd else None
            reason = e.rcvd.reason if e.rcvd else ""
            logger.warning(f"Realtime channel closed unexpectedly: {code} {reason}")
            yield ChannelClosed(code=code, reason=reason)
            return
        except Exception as e:
            logger.error(f"Error in realtime channel receive loop: {e}", exc_info=True)
            yield ChannelError(e)
            return

        yield ChannelClosed(code=self.ws.close_code, reason=self.ws.close_reason or "")

    async def send_json(self, message: Dict[str, Any]) -> bool:
        """
        Send one JSON message.

        Returns:
            bool: True if the message was written, False if the channel is not
            open or the send failed or timed out
        """
        if not self.is_open:
            logger.warning(f"Cannot send {message.get('type')} - channel not open")
            return False
        try:
            await asyncio.wait_for(self.ws.send(json.dumps(message)), timeout=SEND_TIMEOUT)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Timeout while sending {message.get('type')}")
            return False
        except ConnectionClosed as e:
            logger.warning(f"Channel closed while sending {message.get('type')}: {e}")
            return False

    async def close(self) -> None:
        """Close the WebSocket connection; later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        if self.ws is not None:
            logger.debug("Closing realtime channel")
            await self.ws.close()

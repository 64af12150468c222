"""
Pydantic models for the messages the bridge exchanges with its collaborators.

This module defines structured data models for the realtime provider's
webhook events and accept payload, the control-plane request and response
bodies, the telemetry records sent to the ingestion service and the Twilio
Media Streams frames, providing type validation and documentation.
"""

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CALL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-.:]+$")


# Realtime provider webhook events
class SipHeader(BaseModel):
    """One SIP header forwarded with an incoming call."""

    name: str
    value: str


class IncomingCallData(BaseModel):
    """Payload of a realtime.call.incoming event."""

    call_id: str = Field(..., description="Provider-assigned call identifier")
    sip_headers: List[SipHeader] = Field(default_factory=list)

    @field_validator("call_id")
    def validate_call_id(cls, v):
        """Call ids are opaque but must be usable in a URL path."""
        if not v or not CALL_ID_PATTERN.match(v):
            raise ValueError(f"Invalid call id: {v!r}")
        return v


class WebhookEvent(BaseModel):
    """Envelope shared by every webhook event from the realtime provider."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Event type identifier")
    id: Optional[str] = None
    created_at: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class IncomingCallEvent(WebhookEvent):
    """Model for the realtime.call.incoming webhook event."""

    type: Literal["realtime.call.incoming"]
    data: IncomingCallData


# Telephony requests
class AudioOutputConfig(BaseModel):
    voice: str


class AudioConfig(BaseModel):
    output: AudioOutputConfig


class AcceptPayload(BaseModel):
    """Body of the accept request sent for an incoming call."""

    type: Literal["realtime"] = "realtime"
    model: str
    instructions: str
    audio: AudioConfig
    tools: Optional[List[Dict[str, Any]]] = None


class RejectPayload(BaseModel):
    """Body of the reject request sent for an incoming call."""

    status_code: int = Field(603, description="SIP status returned to the caller")


# Control plane
class TransferRequest(BaseModel):
    """Body of POST /control/calls/{call_id}/transfer."""

    reason: Optional[str] = None
    message: Optional[str] = Field(
        None, description="Confirmation spoken to the caller once the transfer starts"
    )
    silent: bool = Field(False, description="Skip the spoken confirmation")


class HangupRequest(BaseModel):
    """Body of POST /control/calls/{call_id}/hangup."""

    reason: Optional[str] = None


class ErrorDetail(BaseModel):
    code: str
    message: str


class ControlResponse(BaseModel):
    """Successful control-plane response."""

    model_config = ConfigDict(extra="allow")

    ok: Literal[True] = True
    call_id: str


class ErrorResponse(BaseModel):
    """Failed control-plane response."""

    ok: Literal[False] = False
    call_id: Optional[str] = None
    error: ErrorDetail


# Telemetry
class CallTelemetry(BaseModel):
    """Call-lifecycle upsert sent to the ingestion service."""

    call_id: str
    event: Literal["start", "status", "end"]
    status: str
    ts: int = Field(..., description="Epoch seconds")
    from_uri: Optional[str] = None
    to_uri: Optional[str] = None
    provider: Optional[str] = None
    conference_name: Optional[str] = None
    call_token: Optional[str] = None
    ended_at: Optional[int] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TranscriptTelemetry(BaseModel):
    """Transcript-segment insert sent to the ingestion service."""

    call_id: str
    seq: int
    ts: int = Field(..., description="Epoch milliseconds")
    speaker: str
    text: str


# Twilio Media Streams
class MediaStreamStart(BaseModel):
    """The start block of a Twilio Media Streams start event."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    stream_sid: str = Field(..., alias="streamSid")
    call_sid: Optional[str] = Field(None, alias="callSid")
    custom_parameters: Dict[str, str] = Field(default_factory=dict, alias="customParameters")


class MediaStreamStartMessage(BaseModel):
    """Twilio Media Streams start event."""

    model_config = ConfigDict(extra="allow")

    event: Literal["start"]
    start: MediaStreamStart


class OutboundMedia(BaseModel):
    payload: str


class OutboundMediaMessage(BaseModel):
    """Agent audio sent back to the Twilio media socket."""

    model_config = ConfigDict(populate_by_name=True)

    event: Literal["media"] = "media"
    stream_sid: str = Field(..., alias="streamSid")
    media: OutboundMedia


# Bridge input
class IncomingCall(BaseModel):
    """An incoming call signal after identity extraction."""

    call_id: str
    from_party: str
    to_party: str
    call_token: Optional[str] = None
    conference_name: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

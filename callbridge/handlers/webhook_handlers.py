"""
Handles webhook events from the realtime provider.

An incoming SIP call arrives as a ``realtime.call.incoming`` event carrying
the provider's call id and the SIP headers of the INVITE. This module pulls
caller and callee identity plus transfer metadata out of those headers and
hands the call to the bridge controller.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from callbridge.bot.call_bridge import CallBridge
from callbridge.config.constants import EVENT_CALL_INCOMING, LOGGER_NAME, UNKNOWN_PARTY
from callbridge.errors import CallAcceptError
from callbridge.models.message_schemas import (
    ErrorDetail,
    ErrorResponse,
    IncomingCall,
    IncomingCallEvent,
    SipHeader,
    WebhookEvent,
)

logger = logging.getLogger(LOGGER_NAME)

# User part of a sip:/sips:/tel: URI, e.g. "Alice" <sip:+15550100@example.com;user=phone>
SIP_URI_PATTERN = re.compile(r"(?:sips?|tel):([^@;>\s]+)", re.IGNORECASE)

CONFERENCE_HEADERS = ("x-conference-name", "x-twilio-conferencename")
CALL_TOKEN_HEADERS = ("x-twilio-calltoken", "x-call-token")
DIVERSION_HEADERS = ("diversion", "history-info")


def extract_party(header_value: Optional[str]) -> Optional[str]:
    """Return the user part of a From/To style header value."""
    if not header_value:
        return None
    match = SIP_URI_PATTERN.search(header_value)
    if match:
        return match.group(1).strip() or None
    stripped = header_value.strip().strip("<>").strip()
    return stripped or None


def index_headers(sip_headers: List[SipHeader]) -> Dict[str, str]:
    """Lower-cased header name to the first value seen for it."""
    headers: Dict[str, str] = {}
    for header in sip_headers:
        headers.setdefault(header.name.lower(), header.value)
    return headers


def _first(headers: Dict[str, str], names: Tuple[str, ...]) -> Optional[str]:
    for name in names:
        if headers.get(name):
            return headers[name].strip()
    return None


def parse_incoming_call(event: IncomingCallEvent) -> IncomingCall:
    """Build the bridge's view of an incoming call from the webhook event."""
    headers = index_headers(event.data.sip_headers)
    metadata: Dict[str, Any] = {}

    diverted_from = extract_party(_first(headers, DIVERSION_HEADERS))
    if diverted_from:
        metadata["diverted_from"] = diverted_from
    if headers.get("x-twilio-callsid"):
        metadata["provider_call_sid"] = headers["x-twilio-callsid"]
    if event.id:
        metadata["webhook_event_id"] = event.id

    return IncomingCall(
        call_id=event.data.call_id,
        from_party=extract_party(headers.get("from")) or UNKNOWN_PARTY,
        to_party=extract_party(headers.get("to")) or UNKNOWN_PARTY,
        call_token=_first(headers, CALL_TOKEN_HEADERS),
        conference_name=_first(headers, CONFERENCE_HEADERS),
        metadata=metadata,
    )


async def handle_webhook_event(message: Dict[str, Any], bridge: CallBridge) -> Tuple[int, Dict[str, Any]]:
    """
    Process one webhook event.

    Args:
        message: The decoded JSON body of the webhook request
        bridge: The bridge controller

    Returns:
        The HTTP status and JSON body to answer the webhook with
    """
    try:
        envelope = WebhookEvent(**message)
    except ValidationError as e:
        logger.warning(f"Invalid webhook event: {e}")
        return 400, _error(None, "invalid_event", "Webhook event is missing its type")

    if envelope.type != EVENT_CALL_INCOMING:
        logger.info(f"Ignoring webhook event type: {envelope.type}")
        return 200, {"ok": True, "ignored": envelope.type}

    try:
        event = IncomingCallEvent(**message)
    except ValidationError as e:
        logger.warning(f"Invalid {EVENT_CALL_INCOMING} event: {e}")
        return 400, _error(None, "invalid_event", "Incoming call event is malformed")

    call = parse_incoming_call(event)
    logger.info(f"Incoming call {call.call_id} from {call.from_party} to {call.to_party}")

    if not bridge.accepting:
        await bridge.handle_incoming_call(call)
        return 503, _error(call.call_id, "shutting_down", "Bridge is not accepting calls")

    try:
        session = await bridge.handle_incoming_call(call)
    except CallAcceptError as e:
        return 502, _error(call.call_id, e.code, str(e))

    if session is None:
        return 200, {"ok": True, "call_id": call.call_id, "duplicate": True}
    return 200, {"ok": True, "call_id": call.call_id, "status": session.status.value}


def _error(call_id: Optional[str], code: str, message: str) -> Dict[str, Any]:
    return ErrorResponse(call_id=call_id, error=ErrorDetail(code=code, message=message)).model_dump()

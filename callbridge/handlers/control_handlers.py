"""
Operator control plane: transfer or hang up a call in flight.

Both actions require the call to be an active session. Failures are raised
as ``BridgeError`` subclasses, which the HTTP layer renders as structured
JSON with the error's code and status.
"""

import hmac
import logging
from typing import Any, Dict, Optional

from callbridge.bot.call_bridge import CallBridge
from callbridge.config.constants import LOGGER_NAME, MEDIA_STREAM_PROVIDER
from callbridge.errors import (
    SessionNotFoundError,
    TransferUnavailableError,
    UnauthorizedError,
)
from callbridge.models.call_session import CallSession
from callbridge.models.message_schemas import ControlResponse, HangupRequest, TransferRequest
from callbridge.services.human_transfer import HumanTransferService
from callbridge.tools.transfer import DEFAULT_CONFIRMATION

logger = logging.getLogger(LOGGER_NAME)


def check_bearer(authorization: Optional[str], expected_token: Optional[str]) -> None:
    """
    Validate an Authorization header against the configured control token.

    No token configured means the control plane is open.

    Raises:
        UnauthorizedError: if a token is configured and the header does not carry it
    """
    if not expected_token:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected_token):
        raise UnauthorizedError("Missing or invalid bearer token")


class ControlPlane:
    """Operator actions on active calls."""

    def __init__(self, bridge: CallBridge, transfer_service: Optional[HumanTransferService] = None):
        self.bridge = bridge
        self.transfer_service = transfer_service

    def _require_session(self, call_id: str) -> CallSession:
        session = self.bridge.sessions.get(call_id)
        if session is None:
            raise SessionNotFoundError(call_id)
        return session

    def list_calls(self) -> Dict[str, Any]:
        return {"ok": True, "calls": [s.summary() for s in self.bridge.sessions.all()]}

    async def transfer(self, call_id: str, request: TransferRequest) -> Dict[str, Any]:
        """
        Bring a human into the call.

        Raises:
            SessionNotFoundError: if the call is not active
            TransferUnavailableError: if no transfer capability is configured
            TransferFailedError: if the transfer request failed; the session is left as it was
        """
        session = self._require_session(call_id)
        if self.transfer_service is None:
            raise TransferUnavailableError(call_id)

        details = await self.transfer_service.transfer(session, reason=request.reason)
        logger.info(f"Operator transfer started for call {call_id}")

        relay = self.bridge.relays.get(call_id)
        if relay is not None:
            relay.transcript.add_system_line(f"Operator transfer to {details['target']} started")

        confirmation_sent = False
        if not request.silent:
            confirmation_sent = await session.create_response(request.message or DEFAULT_CONFIRMATION)

        return ControlResponse(
            call_id=call_id, transfer=details, confirmation_sent=confirmation_sent
        ).model_dump()

    async def hangup(self, call_id: str, request: Optional[HangupRequest] = None) -> Dict[str, Any]:
        """
        End the call.

        The remote hangup is best-effort; the session is ended locally whether
        or not the provider acknowledged it.

        Raises:
            SessionNotFoundError: if the call is not active
        """
        session = self._require_session(call_id)
        reason = (request.reason if request else None) or "operator_hangup"

        remote_hangup = False
        if session.provider != MEDIA_STREAM_PROVIDER:
            try:
                remote_hangup = await self.bridge.telephony.hangup(call_id)
            except Exception as e:
                logger.warning(f"Remote hangup for call {call_id} failed: {e}")

        await self.bridge.end_session(session, reason)
        return ControlResponse(
            call_id=call_id, status=session.status.value, remote_hangup=remote_hangup
        ).model_dump()

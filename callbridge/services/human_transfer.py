"""
Human-transfer capability backed by Twilio conferences.

A transferred call stays in its conference; the configured human agent is
dialled in as an extra participant. The Twilio SDK is synchronous, so the
request runs in a worker thread with a bounded timeout.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from requests.exceptions import RequestException
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from callbridge.config.constants import LOGGER_NAME, UNKNOWN_PARTY
from callbridge.errors import TransferFailedError
from callbridge.models.call_session import CallSession

logger = logging.getLogger(LOGGER_NAME)


class HumanTransferService:
    """Adds a human agent to a call's conference."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        target_number: str,
        from_number: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[Client] = None,
    ):
        self.target_number = target_number
        self.from_number = from_number
        self.timeout = timeout
        self._client = client or Client(
            account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout)
        )

    def _caller_id(self, session: CallSession) -> Optional[str]:
        if self.from_number:
            return self.from_number
        if session.from_party and session.from_party != UNKNOWN_PARTY:
            return session.from_party
        return None

    async def transfer(self, session: CallSession, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Dial the human agent into the session's conference.

        Raises:
            TransferFailedError: if the call has no conference, no usable caller
                id, or Twilio refuses or times out
        """
        if not session.conference_name:
            raise TransferFailedError(f"Call {session.call_id} has no conference to join")
        caller_id = self._caller_id(session)
        if not caller_id:
            raise TransferFailedError(f"Call {session.call_id} has no caller id for the transfer leg")

        params: Dict[str, Any] = {"from_": caller_id, "to": self.target_number}
        if session.call_token:
            params["call_token"] = session.call_token

        logger.info(
            f"Transferring call {session.call_id} to {self.target_number}"
            + (f" (reason: {reason})" if reason else "")
        )
        participants = self._client.conferences(session.conference_name).participants
        try:
            participant = await asyncio.wait_for(
                asyncio.to_thread(participants.create, **params),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise TransferFailedError(f"Transfer for call {session.call_id} timed out")
        except TwilioException as e:
            raise TransferFailedError(f"Transfer for call {session.call_id} failed: {e}")
        except RequestException as e:
            raise TransferFailedError(f"Transfer for call {session.call_id} could not reach Twilio: {e}")

        return {
            "participant_call_sid": getattr(participant, "call_sid", None),
            "target": self.target_number,
        }

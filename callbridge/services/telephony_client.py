"""
REST client for the realtime provider's call-control endpoints.

Incoming SIP calls are answered by POSTing an accept payload for the call id;
the same resource exposes reject and hangup. Every request carries a bounded
timeout; a timeout is a failure of that request only.
"""

import logging
from typing import Optional

import httpx

from callbridge.config.constants import DEFAULT_API_BASE_URL, LOGGER_NAME
from callbridge.errors import CallAcceptError
from callbridge.models.message_schemas import AcceptPayload, RejectPayload

logger = logging.getLogger(LOGGER_NAME)


class TelephonyClient:
    """Accept, reject and hang up calls by id."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def _url(self, call_id: str, action: str) -> str:
        return f"{self.base_url}/realtime/calls/{call_id}/{action}"

    async def accept(self, call_id: str, payload: AcceptPayload) -> None:
        """
        Accept an incoming call.

        Raises:
            CallAcceptError: if the provider answers with a non-success status,
                or the request times out or cannot be sent
        """
        try:
            response = await self._client.post(
                self._url(call_id, "accept"),
                json=payload.model_dump(exclude_none=True),
            )
        except httpx.TimeoutException:
            raise CallAcceptError(call_id, f"Accept request for call {call_id} timed out")
        except httpx.HTTPError as e:
            raise CallAcceptError(call_id, f"Accept request for call {call_id} failed: {e}")

        if response.is_error:
            raise CallAcceptError(
                call_id,
                f"Provider rejected accept for call {call_id}: "
                f"{response.status_code} {response.text[:200]}",
                provider_status=response.status_code,
            )
        logger.info(f"Accepted call {call_id}")

    async def reject(self, call_id: str, status_code: int = 603) -> bool:
        """Decline an incoming call; returns whether the provider acknowledged it."""
        return await self._post_action(
            call_id, "reject", RejectPayload(status_code=status_code).model_dump()
        )

    async def hangup(self, call_id: str) -> bool:
        """Ask the provider to end a call; returns whether it acknowledged."""
        return await self._post_action(call_id, "hangup")

    async def _post_action(self, call_id: str, action: str, body: Optional[dict] = None) -> bool:
        try:
            response = await self._client.post(self._url(call_id, action), json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"{action} request for call {call_id} failed: {e}")
            return False
        logger.info(f"{action} acknowledged for call {call_id}")
        return True

    async def aclose(self) -> None:
        await self._client.aclose()

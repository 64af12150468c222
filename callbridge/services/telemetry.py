"""
Telemetry sink adapter.

Forwards call-lifecycle upserts and transcript segments to the external
ingestion/broadcast service, and mirrors them as plain-text lines to the
optional notifier. Every request is fire-and-forget: failures are logged
and never reach the call that produced the event.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from callbridge.config.constants import LOGGER_NAME
from callbridge.models.call_session import CallSession, CallStatus
from callbridge.models.message_schemas import CallTelemetry, TranscriptTelemetry
from callbridge.models.transcript import TranscriptSegment
from callbridge.services.background import BackgroundTasks
from callbridge.services.notifier import TelegramNotifier

logger = logging.getLogger(LOGGER_NAME)


class TelemetrySink:
    """Best-effort forwarder of call and transcript events."""

    def __init__(
        self,
        ingest_url: Optional[str] = None,
        ingest_token: Optional[str] = None,
        timeout: float = 10.0,
        notifier: Optional[TelegramNotifier] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.ingest_url = ingest_url.rstrip("/") if ingest_url else None
        self.notifier = notifier
        headers = {"Authorization": f"Bearer {ingest_token}"} if ingest_token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)
        self._tasks = BackgroundTasks("telemetry")
        if not self.ingest_url:
            logger.info("INGEST_URL not set; call telemetry disabled")

    @property
    def enabled(self) -> bool:
        return self.ingest_url is not None

    def call_started(self, session: CallSession) -> None:
        self._publish_call(session, "start")
        self._notify(f"Incoming call {session.call_id} from {session.from_party} to {session.to_party}")

    def call_status(self, session: CallSession, reason: Optional[str] = None) -> None:
        """Publish the session's current status; terminal statuses close the record."""
        event = "end" if session.is_terminal else "status"
        self._publish_call(session, event, reason=reason)
        if session.status == CallStatus.LIVE:
            self._notify(f"Call {session.call_id} is live")
        elif session.is_terminal:
            suffix = f" ({reason})" if reason else ""
            self._notify(f"Call {session.call_id} {session.status.value}{suffix}")

    def transcript_segment(self, session: CallSession, segment: TranscriptSegment) -> None:
        payload = TranscriptTelemetry(
            call_id=session.call_id,
            seq=segment.seq,
            ts=int(segment.timestamp * 1000),
            speaker=segment.speaker.value,
            text=segment.text,
        )
        self._post("/ingest/transcript", payload.model_dump())
        self._notify(f"[{session.call_id}] {segment.as_line()}")

    def _publish_call(self, session: CallSession, event: str, reason: Optional[str] = None) -> None:
        payload = CallTelemetry(
            call_id=session.call_id,
            event=event,
            status=session.status.value,
            ts=int(time.time()),
            from_uri=session.from_party,
            to_uri=session.to_party,
            provider=session.provider or None,
            conference_name=session.conference_name,
            call_token=session.call_token,
            ended_at=int(session.ended_at) if session.ended_at else None,
            reason=reason,
            metadata=session.metadata,
        )
        self._post("/ingest/call", payload.model_dump(exclude_none=True))

    def _post(self, path: str, payload: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        self._tasks.spawn(self._send(path, payload))

    async def _send(self, path: str, payload: Dict[str, Any]) -> None:
        url = f"{self.ingest_url}{path}"
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
            logger.debug(f"Telemetry {path} accepted for call {payload.get('call_id')}")
        except httpx.HTTPError as e:
            logger.warning(f"Telemetry {path} failed for call {payload.get('call_id')}: {e}")

    def _notify(self, text: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(text)

    async def drain(self) -> None:
        await self._tasks.drain()
        if self.notifier is not None:
            await self.notifier.drain()

    async def aclose(self) -> None:
        await self.drain()
        await self._client.aclose()
        if self.notifier is not None:
            await self.notifier.aclose()

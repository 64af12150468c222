"""
FastAPI server bridging phone calls to a realtime voice-AI service.

This module builds the FastAPI application that:
- receives ``realtime.call.incoming`` webhooks and hands calls to the bridge,
- exposes the operator control plane to list, transfer and hang up calls,
- serves TwiML and the media-stream socket for calls routed through Twilio.

Every collaborator is created once in ``create_app`` and shared through
``app.state``; they are closed again when the application shuts down.
"""

import json
import os
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import parse_qs

from fastapi import Depends, FastAPI, Header, Request, WebSocket
from fastapi.responses import JSONResponse, Response

from callbridge.bot.call_bridge import CallBridge, ChannelFactory
from callbridge.config.constants import DEFAULT_HOST, DEFAULT_PORT
from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import BridgeSettings, load_env_file
from callbridge.errors import BridgeError
from callbridge.handlers.control_handlers import ControlPlane, check_bearer
from callbridge.handlers.media_stream import MediaStreamManager, build_twiml, media_stream_url
from callbridge.handlers.webhook_handlers import handle_webhook_event
from callbridge.models.message_schemas import (
    ErrorDetail,
    ErrorResponse,
    HangupRequest,
    TransferRequest,
)
from callbridge.models.session_registry import SessionRegistry
from callbridge.services.human_transfer import HumanTransferService
from callbridge.services.notifier import TelegramNotifier
from callbridge.services.telemetry import TelemetrySink
from callbridge.services.telephony_client import TelephonyClient
from callbridge.tools import create_tool_registry

APP_NAME = "Call Bridge"
APP_DESCRIPTION = "Bridges inbound phone calls to a realtime voice-AI service"
APP_VERSION = "1.0.0"

logger = configure_logging()


def create_app(
    settings: Optional[BridgeSettings] = None,
    telephony: Optional[TelephonyClient] = None,
    telemetry: Optional[TelemetrySink] = None,
    transfer_service: Optional[HumanTransferService] = None,
    channel_factory: Optional[ChannelFactory] = None,
) -> FastAPI:
    """
    Build the application and its collaborators.

    Args:
        settings: Configuration; read from the environment (and .env) when omitted
        telephony: Telephony client override
        telemetry: Telemetry sink override
        transfer_service: Human-transfer override; built from settings when omitted
        channel_factory: Realtime channel factory override

    Raises:
        ConfigurationError: if the configuration is missing required values
    """
    if settings is None:
        load_env_file()
        settings = BridgeSettings.from_env()
    settings.validate()

    if transfer_service is None and settings.transfer_configured:
        transfer_service = HumanTransferService(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.human_transfer_number,
            from_number=settings.twilio_from_number,
            timeout=settings.outbound_timeout_s,
        )

    notifier = None
    if telemetry is None and settings.notifications_configured:
        notifier = TelegramNotifier(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            timeout=settings.outbound_timeout_s,
        )
    telemetry = telemetry or TelemetrySink(
        settings.ingest_url,
        settings.ingest_token,
        timeout=settings.outbound_timeout_s,
        notifier=notifier,
    )
    telephony = telephony or TelephonyClient(
        settings.openai_api_key,
        base_url=settings.api_base_url,
        timeout=settings.outbound_timeout_s,
    )

    tools = create_tool_registry(transfer_service)
    bridge = CallBridge(
        settings,
        SessionRegistry(),
        tools,
        telephony,
        telemetry,
        channel_factory=channel_factory,
    )
    control = ControlPlane(bridge, transfer_service)
    media = MediaStreamManager(bridge)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Bridge ready; tools: {', '.join(tools.names()) or 'none'}")
        yield
        logger.info("Shutting down bridge")
        await bridge.shutdown()
        await telemetry.aclose()
        await telephony.aclose()

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.bridge = bridge
    app.state.control = control

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        body = ErrorResponse(
            call_id=getattr(exc, "call_id", None),
            error=ErrorDetail(code=exc.code, message=str(exc)),
        )
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    async def require_operator(authorization: Optional[str] = Header(None)) -> None:
        check_bearer(authorization, settings.control_token)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring system status."""
        return {
            "status": "healthy",
            "openai_api_key_configured": bool(settings.openai_api_key),
            "accepting_calls": bridge.accepting,
            "active_calls": len(bridge.sessions),
            "tools": tools.names(),
            "transfer_configured": transfer_service is not None,
            "telemetry_enabled": telemetry.enabled,
        }

    @app.get("/")
    async def root():
        """Basic information about the API."""
        return {
            "name": APP_NAME,
            "description": APP_DESCRIPTION,
            "version": APP_VERSION,
            "endpoints": {
                "/webhooks/realtime": "Incoming call webhook from the realtime provider",
                "/control/calls": "Active calls (operator)",
                "/control/calls/{call_id}/transfer": "Bring a human into a call (operator)",
                "/control/calls/{call_id}/hangup": "End a call (operator)",
                "/voice": "TwiML for calls routed through Twilio Media Streams",
                "/media": "Twilio Media Streams WebSocket",
                "/health": "Health check endpoint",
            },
        }

    @app.post("/webhooks/realtime")
    async def realtime_webhook(request: Request):
        """Incoming call signals from the realtime provider."""
        try:
            message = json.loads(await request.body())
        except ValueError:
            message = None
        if not isinstance(message, dict):
            logger.warning("Rejecting webhook with a body that is not a JSON object")
            body = ErrorResponse(error=ErrorDetail(code="invalid_event", message="Body must be a JSON object"))
            return JSONResponse(status_code=400, content=body.model_dump())

        status, body = await handle_webhook_event(message, bridge)
        return JSONResponse(status_code=status, content=body)

    @app.get("/control/calls", dependencies=[Depends(require_operator)])
    async def list_calls():
        return control.list_calls()

    @app.post("/control/calls/{call_id}/transfer", dependencies=[Depends(require_operator)])
    async def transfer_call(call_id: str, request: Optional[TransferRequest] = None):
        return await control.transfer(call_id, request or TransferRequest())

    @app.post("/control/calls/{call_id}/hangup", dependencies=[Depends(require_operator)])
    async def hangup_call(call_id: str, request: Optional[HangupRequest] = None):
        return await control.hangup(call_id, request)

    @app.post("/voice")
    async def voice(request: Request):
        """TwiML that streams the call's audio to /media."""
        form = parse_qs((await request.body()).decode("utf-8", errors="replace"))
        parameters = {
            "from": (form.get("From") or [None])[0],
            "to": (form.get("To") or [None])[0],
        }
        stream_url = media_stream_url(settings.public_url, request.headers.get("host"))
        return Response(content=build_twiml(stream_url, parameters), media_type="application/xml")

    @app.websocket("/media")
    async def media_endpoint(websocket: WebSocket):
        """Twilio Media Streams socket for one call."""
        await media.handle_websocket(websocket)

    return app


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", DEFAULT_HOST)
    port = int(os.getenv("PORT", str(DEFAULT_PORT)))
    logger.info(f"Starting server on http://{host}:{port}")
    uvicorn.run(create_app(), host=host, port=port, http="h11")

"""
Call Bridge - phone calls to a realtime voice-AI service

This application accepts inbound phone calls, opens a duplex realtime channel
to a voice-AI service for each one, rebuilds an ordered transcript from the
streamed deltas, runs the tools the agent calls (for example bringing a human
into the call) and lets an operator transfer or end a call in flight.

Architecture Overview:
- FastAPI server exposing the provider webhook, the operator control plane and
  a Twilio media-stream socket
- Realtime WebSocket channel per call, processed strictly in order
- Fire-and-forget telemetry to an ingestion service and a Telegram chat

Key Components:
- bot: bridge controller, realtime channel, transcript and tool-call processing
- config: constants, logging setup and environment settings
- handlers: webhook, control-plane and media-stream request handling
- models: call session state, registries and pydantic message models
- services: HTTP collaborators (telephony, telemetry, notifications, transfer)
- tools: the tools exposed to the voice agent

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key
   - PORT: Port to run the server on (default 8000)
   - HOST: Host to bind the server to (default 0.0.0.0)
   - LOG_LEVEL: Logging level (default INFO)

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the realtime SIP webhook at http://your-server:8000/webhooks/realtime
"""

"""
Handlers module for requests reaching the bridge.

Key components:
- webhook_handlers: parses ``realtime.call.incoming`` events and hands calls
  to the bridge controller.
- control_handlers: operator transfer and hangup for active calls.
- media_stream: Twilio Media Streams socket relay and the TwiML that starts it.
"""

# Handlers module initialization

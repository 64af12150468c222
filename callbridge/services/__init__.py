"""
Services module for external API integrations.

Key components:
- telephony_client: accept, reject and hang up calls over the realtime REST API.
- human_transfer: adds a human participant to the call's conference via Twilio.
- telemetry: call and transcript records posted to the ingestion service.
- notifier: Telegram notifications, split to the message size limit.
- background: tracking for fire-and-forget tasks.
"""

# Services module initialization

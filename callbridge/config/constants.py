"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for event names, endpoints and defaults so the
realtime protocol strings are spelled in exactly one place.
"""

# Logger name used throughout the application
LOGGER_NAME = "call_bridge"

# Defaults for the realtime voice-AI service
DEFAULT_REALTIME_MODEL = "gpt-realtime"
DEFAULT_VOICE = "alloy"
DEFAULT_API_BASE_URL = "https://api.openai.com/v1"
DEFAULT_REALTIME_WS_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_INSTRUCTIONS = "You are a helpful phone agent."
DEFAULT_PROVIDER = "openai-sip"
MEDIA_STREAM_PROVIDER = "twilio-media"

# Server
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000

# Timing
DEFAULT_CONNECT_DELAY_MS = 500
DEFAULT_OUTBOUND_TIMEOUT_S = 10.0

# Notification sink
TELEGRAM_API_URL = "https://api.telegram.org"
MAX_NOTIFICATION_LENGTH = 4096

# Fallback for identity fields that could not be extracted
UNKNOWN_PARTY = "unknown"

# Webhook event types
EVENT_CALL_INCOMING = "realtime.call.incoming"

# Caller speech transcription events
EVENT_INPUT_TRANSCRIPT_DELTA = "conversation.item.input_audio_transcription.delta"
EVENT_INPUT_TRANSCRIPT_COMPLETED = "conversation.item.input_audio_transcription.completed"

# Agent speech/text events
EVENT_OUTPUT_AUDIO_TRANSCRIPT_DELTA = "response.output_audio_transcript.delta"
EVENT_OUTPUT_AUDIO_TRANSCRIPT_DONE = "response.output_audio_transcript.done"
EVENT_AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
EVENT_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
EVENT_OUTPUT_TEXT_DELTA = "response.output_text.delta"
EVENT_OUTPUT_TEXT_DONE = "response.output_text.done"
EVENT_TEXT_DELTA = "response.text.delta"
EVENT_TEXT_DONE = "response.text.done"

# Agent audio
EVENT_OUTPUT_AUDIO_DELTA = "response.output_audio.delta"
EVENT_AUDIO_DELTA = "response.audio.delta"

# Tool-call events
EVENT_FUNCTION_ARGUMENTS_DELTA = "response.function_call_arguments.delta"
EVENT_FUNCTION_ARGUMENTS_DONE = "response.function_call_arguments.done"
EVENT_OUTPUT_ITEM_ADDED = "response.output_item.added"
EVENT_OUTPUT_ITEM_DONE = "response.output_item.done"

EVENT_ERROR = "error"

# Outbound message types
MESSAGE_TYPE_SESSION_UPDATE = "session.update"
MESSAGE_TYPE_INPUT_AUDIO_APPEND = "input_audio_buffer.append"
MESSAGE_TYPE_INPUT_AUDIO_COMMIT = "input_audio_buffer.commit"
MESSAGE_TYPE_RESPONSE_CREATE = "response.create"
MESSAGE_TYPE_ITEM_CREATE = "conversation.item.create"

# Spoken when a tool handler raises
TOOL_FAILURE_APOLOGY = (
    "Apologize to the caller: something went wrong while handling that request. "
    "Offer to help in another way."
)

"""
Environment-driven settings for the call bridge.

Values are read from the process environment (optionally seeded from a
``.env`` file) once at startup and passed explicitly to the components that
need them.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import dotenv

from callbridge.config.constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_CONNECT_DELAY_MS,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_OUTBOUND_TIMEOUT_S,
    DEFAULT_PROVIDER,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_REALTIME_WS_URL,
    DEFAULT_VOICE,
    LOGGER_NAME,
)
from callbridge.errors import ConfigurationError

logger = logging.getLogger(LOGGER_NAME)


def load_env_file(path: str = ".env") -> None:
    """Load a .env file into the environment if it exists."""
    env_path = Path(path)
    if env_path.exists():
        dotenv.load_dotenv(env_path)


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class BridgeSettings:
    """Process-wide configuration for the bridge."""

    openai_api_key: Optional[str] = None
    api_base_url: str = DEFAULT_API_BASE_URL
    realtime_ws_url: str = DEFAULT_REALTIME_WS_URL
    model: str = DEFAULT_REALTIME_MODEL
    voice: str = DEFAULT_VOICE
    prompt_path: Optional[str] = None
    greeting: Optional[str] = None
    connect_delay_ms: float = DEFAULT_CONNECT_DELAY_MS
    outbound_timeout_s: float = DEFAULT_OUTBOUND_TIMEOUT_S
    provider: str = DEFAULT_PROVIDER
    control_token: Optional[str] = None
    ingest_url: Optional[str] = None
    ingest_token: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    human_transfer_number: Optional[str] = None
    twilio_from_number: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    public_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "BridgeSettings":
        """Build settings from environment variables."""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            api_base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_API_BASE_URL),
            realtime_ws_url=os.getenv("OPENAI_REALTIME_WS_URL", DEFAULT_REALTIME_WS_URL),
            model=os.getenv("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL),
            voice=os.getenv("OPENAI_VOICE", DEFAULT_VOICE),
            prompt_path=os.getenv("PROMPT_PATH") or None,
            greeting=os.getenv("AGENT_GREETING") or None,
            connect_delay_ms=_get_float("CONNECT_DELAY_MS", DEFAULT_CONNECT_DELAY_MS),
            outbound_timeout_s=_get_float("OUTBOUND_TIMEOUT_S", DEFAULT_OUTBOUND_TIMEOUT_S),
            provider=os.getenv("CALL_PROVIDER", DEFAULT_PROVIDER),
            control_token=os.getenv("CONTROL_TOKEN") or None,
            ingest_url=os.getenv("INGEST_URL") or None,
            ingest_token=os.getenv("INGEST_TOKEN") or None,
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID") or None,
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN") or None,
            human_transfer_number=os.getenv("HUMAN_TRANSFER_NUMBER") or None,
            twilio_from_number=os.getenv("TWILIO_FROM_NUMBER") or None,
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID") or None,
            public_url=os.getenv("PUBLIC_URL") or None,
        )

    @property
    def transfer_configured(self) -> bool:
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.human_transfer_number
        )

    @property
    def notifications_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def connect_delay_s(self) -> float:
        return max(self.connect_delay_ms, 0) / 1000.0

    def validate(self) -> None:
        """
        Check that the required credentials are present.

        Raises:
            ConfigurationError: if the API key is missing or the Twilio
                transfer settings are only partially configured
        """
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable not set")

        twilio_values = {
            "TWILIO_ACCOUNT_SID": self.twilio_account_sid,
            "TWILIO_AUTH_TOKEN": self.twilio_auth_token,
            "HUMAN_TRANSFER_NUMBER": self.human_transfer_number,
        }
        present = [name for name, value in twilio_values.items() if value]
        if present and len(present) != len(twilio_values):
            missing = [name for name in twilio_values if name not in present]
            raise ConfigurationError(
                f"Human transfer is partially configured; missing: {', '.join(missing)}"
            )

        if self.outbound_timeout_s <= 0:
            raise ConfigurationError("OUTBOUND_TIMEOUT_S must be positive")

        if not self.public_url:
            logger.warning(
                "PUBLIC_URL is not set; the media-stream TwiML will not point at a reachable URL"
            )

    def load_instructions(self) -> str:
        """Read the agent prompt, falling back to a short default."""
        if not self.prompt_path:
            return DEFAULT_INSTRUCTIONS
        try:
            return Path(self.prompt_path).read_text(encoding="utf-8")
        except OSError:
            logger.warning(
                f"Could not read prompt file {self.prompt_path}; using the default instructions"
            )
            return DEFAULT_INSTRUCTIONS

import logging
import os
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

os.environ.setdefault("OPENAI_API_KEY", "test-api-key")

from callbridge.config.settings import BridgeSettings
from callbridge.models.call_session import CallSession, CallStatus
from callbridge.services.telemetry import TelemetrySink
from callbridge.services.telephony_client import TelephonyClient


class FakeChannel:
    """Scripted stand-in for RealtimeChannel."""

    def __init__(self, events: Optional[List[Any]] = None):
        self.scripted = list(events or [])
        self.sent: List[Dict[str, Any]] = []
        self.close_count = 0
        self.opened = False

    @property
    def is_open(self) -> bool:
        return self.opened and self.close_count == 0

    async def events(self):
        for event in self.scripted:
            self.opened = True
            yield event

    async def send_json(self, message: Dict[str, Any]) -> bool:
        self.sent.append(message)
        return True

    async def close(self) -> None:
        self.close_count += 1

    def sent_types(self) -> List[str]:
        return [m.get("type") for m in self.sent]


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture
def settings():
    """Settings with no pre-connect delay and no optional collaborators."""
    return BridgeSettings(openai_api_key="test-api-key", connect_delay_ms=0)


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def live_session(fake_channel):
    """A live session with an attached fake channel."""
    session = CallSession("call-123", from_party="+15550100", to_party="+15550199", provider="openai-sip")
    session.attach_channel(fake_channel)
    session.transition(CallStatus.LIVE)
    return session


@pytest.fixture
def mock_telephony():
    mock = AsyncMock(spec=TelephonyClient)
    mock.reject.return_value = True
    mock.hangup.return_value = True
    return mock


@pytest.fixture
def mock_telemetry():
    mock = MagicMock(spec=TelemetrySink)
    mock.enabled = False
    mock.drain = AsyncMock()
    mock.aclose = AsyncMock()
    return mock

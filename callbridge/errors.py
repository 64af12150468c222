"""
Exception hierarchy for the call bridge.

Only ``ConfigurationError`` is fatal to the process; every other error is
contained to the operation that raised it.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""

    code = "bridge_error"
    status_code = 500


class ConfigurationError(BridgeError):
    """Missing or inconsistent startup configuration."""

    code = "configuration_error"


class InvalidTransitionError(BridgeError):
    """A call session was asked to move to a state it cannot reach."""

    code = "invalid_transition"

    def __init__(self, call_id: str, current: str, requested: str):
        super().__init__(f"Call {call_id}: cannot transition from {current} to {requested}")
        self.call_id = call_id
        self.current = current
        self.requested = requested


class CallAcceptError(BridgeError):
    """The telephony provider rejected (or never answered) the accept request."""

    code = "accept_failed"
    status_code = 502

    def __init__(self, call_id: str, message: str, provider_status: Optional[int] = None):
        super().__init__(message)
        self.call_id = call_id
        self.provider_status = provider_status


class SessionNotFoundError(BridgeError):
    """No active session exists for the requested call id."""

    code = "not_found"
    status_code = 404

    def __init__(self, call_id: str):
        super().__init__(f"Call {call_id} is not active")
        self.call_id = call_id


class TransferUnavailableError(BridgeError):
    """No human-transfer capability is configured."""

    code = "transfer_unavailable"
    status_code = 400

    def __init__(self, call_id: Optional[str] = None):
        super().__init__("Human transfer is not configured")
        self.call_id = call_id


class TransferFailedError(BridgeError):
    """The human-transfer request was attempted and failed."""

    code = "transfer_failed"
    status_code = 400


class UnauthorizedError(BridgeError):
    """Missing or wrong bearer credential on the control plane."""

    code = "unauthorized"
    status_code = 401

"""
Registry of active call sessions.

The ``SessionRegistry`` is the single source of truth for whether a call is
active. It is shared by inbound webhook handlers, channel event loops and
control-plane requests, so every operation holds a lock. Besides the sessions
themselves it tracks call ids whose accept handshake is still in flight, which
is how duplicate "incoming call" signals are dropped.
"""

import threading
from typing import Dict, List, Optional

from callbridge.models.call_session import CallSession


class SessionRegistry:
    """
    Concurrency-safe map of call id to ``CallSession``.

    Created once at startup and owned by the bridge controller.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._sessions: Dict[str, CallSession] = {}
        self._accepting: set = set()
        self._lock = threading.Lock()

    def reserve(self, call_id: str) -> bool:
        """
        Mark ``call_id`` as accept-in-flight.

        Returns:
            False if the call is already active or being accepted, True otherwise
        """
        with self._lock:
            if call_id in self._sessions or call_id in self._accepting:
                return False
            self._accepting.add(call_id)
            return True

    def release(self, call_id: str) -> None:
        """Clear the accept-in-flight marker for ``call_id``."""
        with self._lock:
            self._accepting.discard(call_id)

    def is_accepting(self, call_id: str) -> bool:
        with self._lock:
            return call_id in self._accepting

    def add(self, session: CallSession) -> None:
        """
        Register a session.

        Args:
            session: The session to register, keyed by its call id
        """
        with self._lock:
            self._sessions[session.call_id] = session

    def get(self, call_id: str) -> Optional[CallSession]:
        """
        Get an active session by its call id.

        Returns:
            The session, or None if no such call is active
        """
        with self._lock:
            return self._sessions.get(call_id)

    def remove(self, call_id: str) -> Optional[CallSession]:
        """
        Remove a session; removing an unknown id does nothing.

        Returns:
            The removed session, if any
        """
        with self._lock:
            return self._sessions.pop(call_id, None)

    def all(self) -> List[CallSession]:
        """Snapshot of all active sessions."""
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, call_id: str) -> bool:
        with self._lock:
            return call_id in self._sessions

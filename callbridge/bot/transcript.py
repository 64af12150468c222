"""
Streaming transcript aggregation.

The realtime service streams caller and agent speech as text fragments
followed by a completion event. ``TranscriptAggregator`` concatenates the
fragments per speaker and, on completion, turns the buffer into one
``TranscriptSegment`` with the call's next sequence number. Loss of an event
is tolerated silently: the transcript is best-effort, not a call record.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from callbridge.config.constants import (
    EVENT_AUDIO_TRANSCRIPT_DELTA,
    EVENT_AUDIO_TRANSCRIPT_DONE,
    EVENT_INPUT_TRANSCRIPT_COMPLETED,
    EVENT_INPUT_TRANSCRIPT_DELTA,
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DELTA,
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DONE,
    EVENT_OUTPUT_TEXT_DELTA,
    EVENT_OUTPUT_TEXT_DONE,
    EVENT_TEXT_DELTA,
    EVENT_TEXT_DONE,
    LOGGER_NAME,
)
from callbridge.models.call_session import CallSession
from callbridge.models.transcript import Speaker, TranscriptSegment

logger = logging.getLogger(LOGGER_NAME)

SegmentCallback = Callable[[CallSession, TranscriptSegment], None]


class FragmentKind(str, Enum):
    DELTA = "delta"
    COMPLETED = "completed"
    UNRELATED = "unrelated"


TRANSCRIPT_EVENTS: Dict[str, Tuple[Speaker, FragmentKind]] = {
    EVENT_INPUT_TRANSCRIPT_DELTA: (Speaker.CALLER, FragmentKind.DELTA),
    EVENT_INPUT_TRANSCRIPT_COMPLETED: (Speaker.CALLER, FragmentKind.COMPLETED),
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DELTA: (Speaker.AGENT, FragmentKind.DELTA),
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DONE: (Speaker.AGENT, FragmentKind.COMPLETED),
    EVENT_AUDIO_TRANSCRIPT_DELTA: (Speaker.AGENT, FragmentKind.DELTA),
    EVENT_AUDIO_TRANSCRIPT_DONE: (Speaker.AGENT, FragmentKind.COMPLETED),
    EVENT_OUTPUT_TEXT_DELTA: (Speaker.AGENT, FragmentKind.DELTA),
    EVENT_OUTPUT_TEXT_DONE: (Speaker.AGENT, FragmentKind.COMPLETED),
    EVENT_TEXT_DELTA: (Speaker.AGENT, FragmentKind.DELTA),
    EVENT_TEXT_DONE: (Speaker.AGENT, FragmentKind.COMPLETED),
}

# Fields that may carry the authoritative full text on a completion event
OVERRIDE_FIELDS = ("transcript", "text")


def classify(event_type: Optional[str]) -> Tuple[Optional[Speaker], FragmentKind]:
    """Map a realtime event type to the speaker it belongs to and its kind."""
    return TRANSCRIPT_EVENTS.get(event_type or "", (None, FragmentKind.UNRELATED))


def normalize_fragment(value: Any) -> str:
    """
    Flatten a fragment to a string.

    Accepts a plain string, a sequence of parts (flattened recursively and
    concatenated in order) or an object carrying ``text`` or ``value``.
    Anything else counts as empty.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "".join(normalize_fragment(part) for part in value)
    if isinstance(value, dict):
        for key in ("text", "value"):
            if key in value:
                return normalize_fragment(value[key])
    return ""


class TranscriptAggregator:
    """Builds transcript segments for one call."""

    def __init__(self, session: CallSession, on_segment: Optional[SegmentCallback] = None):
        self.session = session
        self.on_segment = on_segment
        self.last_segment: Optional[TranscriptSegment] = None

    def handle_event(self, event: Dict[str, Any]) -> Optional[TranscriptSegment]:
        """
        Apply one realtime event.

        Returns:
            The segment emitted by a completion event, otherwise None
        """
        speaker, kind = classify(event.get("type"))
        if kind == FragmentKind.DELTA:
            self.append(speaker, event.get("delta"))
            return None
        if kind == FragmentKind.COMPLETED:
            override = None
            for field_name in OVERRIDE_FIELDS:
                if event.get(field_name) is not None:
                    override = event[field_name]
                    break
            return self.flush(speaker, override)
        return None

    def append(self, speaker: Speaker, fragment: Any) -> None:
        self.session.buffers[speaker] = self.session.buffers.get(speaker, "") + normalize_fragment(fragment)

    def flush(self, speaker: Speaker, override: Any = None) -> Optional[TranscriptSegment]:
        """Finish the current line for ``speaker``; the buffer is reset either way."""
        buffered = self.session.buffers.get(speaker, "")
        self.session.buffers[speaker] = ""
        authoritative = normalize_fragment(override) if override is not None else ""
        text = (authoritative or buffered).strip()
        if not text:
            return None
        return self._emit(speaker, text)

    def add_system_line(self, text: str) -> Optional[TranscriptSegment]:
        """Record a line attributed to the bridge itself (transfers, hangups)."""
        text = text.strip()
        if not text:
            return None
        return self._emit(Speaker.SYSTEM, text)

    def _emit(self, speaker: Speaker, text: str) -> TranscriptSegment:
        segment = TranscriptSegment(seq=self.session.next_seq(), speaker=speaker, text=text)
        self.last_segment = segment
        logger.info(f"Call {self.session.call_id} #{segment.seq} {segment.as_line()}")
        if self.on_segment is not None:
            self.on_segment(self.session, segment)
        return segment

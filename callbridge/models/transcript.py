"""
Transcript data structures.

A ``TranscriptSegment`` is one finalized line of a call's transcript. Segments
are immutable and carry a per-call sequence number that strictly increases.
"""

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Speaker(str, Enum):
    """Who said a line."""
    CALLER = "caller"
    AGENT = "agent"
    SYSTEM = "system"


class TranscriptSegment(BaseModel):
    """One finalized transcript line."""

    model_config = ConfigDict(frozen=True)

    seq: int = Field(..., ge=1, description="Per-call sequence number, starting at 1")
    timestamp: float = Field(default_factory=time.time, description="Epoch seconds")
    speaker: Speaker
    text: str

    @field_validator("text")
    def validate_text(cls, v):
        """Segments never carry blank text."""
        if not v.strip():
            raise ValueError("Transcript text cannot be empty")
        return v

    def as_line(self) -> str:
        return f"{self.speaker.value}: {self.text}"

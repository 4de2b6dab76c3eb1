"""
Progress stream models.

Each StreamChunk serializes to exactly one NDJSON line.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import Field, field_serializer

from ..core.types import utcnow
from .base import FrozenWireModel
from .project import GeneratedFile, ProjectMetadata


class EventType(str, Enum):
    """Progress event categories."""

    INGESTING = "ingesting"
    PLANNING = "planning"
    ANALYZING = "analyzing"
    CODING = "coding"
    COMPILING = "compiling"
    REVIEWING = "reviewing"
    VALIDATING = "validating"
    RESPONSIVE_CHECK = "responsive_check"
    RUNTIME_FALLBACK = "runtime_fallback"
    COMPLETE = "complete"
    ERROR = "error"


class GenerationEvent(FrozenWireModel):
    """A typed progress event with a 0-100 progress hint."""

    type: EventType
    message: str
    progress: int = Field(ge=0, le=100)
    timestamp: datetime = Field(default_factory=utcnow)

    @field_serializer("timestamp")
    def _iso(self, value: datetime) -> str:
        return value.isoformat()


ChunkType = Literal["event", "file", "metadata", "error", "done"]


class StreamChunk(FrozenWireModel):
    """One line of the NDJSON progress protocol."""

    type: ChunkType
    event: GenerationEvent | None = None
    file: GeneratedFile | None = None
    metadata: ProjectMetadata | None = None
    error: str | None = None

    @classmethod
    def for_event(cls, event_type: EventType, message: str, progress: int) -> StreamChunk:
        return cls(
            type="event",
            event=GenerationEvent(type=event_type, message=message, progress=max(0, min(100, progress))),
        )

    @classmethod
    def for_file(cls, file: GeneratedFile) -> StreamChunk:
        return cls(type="file", file=file)

    @classmethod
    def for_metadata(cls, metadata: ProjectMetadata) -> StreamChunk:
        return cls(type="metadata", metadata=metadata)

    @classmethod
    def for_error(cls, message: str) -> StreamChunk:
        return cls(type="error", error=message)

    @classmethod
    def done(cls) -> StreamChunk:
        return cls(type="done")

    @property
    def is_terminal(self) -> bool:
        return self.type in ("error", "done")

    def to_line(self) -> str:
        """Serialize as a single NDJSON line, newline included."""
        payload: dict[str, Any] = self.to_wire()
        return json.dumps(payload, ensure_ascii=False) + "\n"

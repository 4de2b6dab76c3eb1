"""
Core type definitions for WebForge.

Result wrappers and the pipeline stage vocabulary shared by services and the
orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar


class PipelineStage(str, Enum):
    """States of the generation state machine."""

    INGEST = "ingest"
    SPEC = "spec"
    BUILD = "build"
    POLICY = "policy"
    VALIDATE = "validate"
    RUNTIME_VALIDATE = "runtime_validate"
    ACCEPT = "accept"
    REPAIR = "repair"
    ROLLBACK = "rollback"
    FINALIZE = "finalize"
    DONE = "done"
    FATAL = "fatal"


T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Result wrapper for service operations that may degrade instead of failing.

    Provides a consistent return type that includes success/failure status,
    the result data, and any errors or warnings.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0

    @classmethod
    def ok(cls, data: T, **metadata: Any) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> ServiceResult[T]:
        """Create a failed result."""
        return cls(success=False, error=error, metadata=metadata)

    @classmethod
    def with_warnings(cls, data: T, warnings: list[str], **metadata: Any) -> ServiceResult[T]:
        """Create a successful result with warnings."""
        return cls(success=True, data=data, warnings=warnings, metadata=metadata)


@dataclass(frozen=True)
class StageTransition:
    """One recorded move of the state machine."""

    stage: PipelineStage
    attempt: int
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)

"""
Validation result models.

Reports are never mutated after creation; folding in a runtime failure or
forcing a stop produces a superseding copy.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from .base import FrozenWireModel


class RuntimePhase(str, Enum):
    """Phase reached by the runtime build check."""

    SKIPPED = "skipped"
    INSTALL = "install"
    BUILD = "build"
    TEST = "test"


class RuntimeBuildValidationResult(FrozenWireModel):
    """Outcome of one sandboxed install/build run."""

    passed: bool
    phase: RuntimePhase
    issues: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def skipped(self) -> bool:
        return self.phase is RuntimePhase.SKIPPED


class QualityReport(FrozenWireModel):
    """Outcome of one validation pass."""

    visual_score: int = Field(ge=0, le=100)
    functional_pass: bool
    issues: list[str] = Field(default_factory=list)
    accepted: bool
    retry_recommended: bool
    patch_instructions: str | None = None
    responsive_warnings: list[str] = Field(default_factory=list)

    def with_runtime_failure(self, runtime: RuntimeBuildValidationResult) -> QualityReport:
        """Superseding report that folds a failed runtime build into the gate."""
        header = f"Runtime {runtime.phase.value} failed."
        issues = [*self.issues, header, *runtime.issues]
        patch = "\n".join(
            part
            for part in (
                self.patch_instructions,
                "Fix the runtime build errors below so install and build succeed:",
                *(f"- {line}" for line in runtime.issues),
            )
            if part
        )
        return self.model_copy(
            update={
                "issues": issues,
                "accepted": False,
                "retry_recommended": True,
                "patch_instructions": patch,
            }
        )

    def without_retry(self) -> QualityReport:
        return self.model_copy(update={"retry_recommended": False})

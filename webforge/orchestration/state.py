"""
Per-request orchestration state.

Each validation pass produces an immutable PassState. The state keeps the
in-flight pass and, separately, the most recent pass that cleared the runtime
build gate, so rolling back is just restoring that captured object.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from ..agents.client import CostLedger
from ..core.logging import get_logger
from ..core.types import PipelineStage, StageTransition
from ..models.project import PackageManifest, Project, ResponsiveReport, RuntimeHint
from ..models.quality import QualityReport, RuntimeBuildValidationResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class PassState:
    """Everything one Build -> Policy -> Validate -> RuntimeValidate pass produced."""

    project: Project
    manifest: PackageManifest
    runtime_hint: RuntimeHint
    responsive_report: ResponsiveReport
    report: QualityReport
    runtime: RuntimeBuildValidationResult
    notes: tuple[str, ...] = ()
    attempt: int = 0

    @property
    def runtime_passed(self) -> bool:
        return self.runtime.passed


@dataclass
class OrchestrationState:
    """Mutable bookkeeping for one request; discarded when the stream closes."""

    ledger: CostLedger
    max_retries: int
    retries_used: int = 0
    stage: PipelineStage = PipelineStage.INGEST
    transitions: list[StageTransition] = field(default_factory=list)
    current: PassState | None = None
    stable: PassState | None = None
    rolled_back: bool = False

    @property
    def total_cost_usd(self) -> float:
        return self.ledger.total_usd

    @property
    def retries_remaining(self) -> int:
        return max(0, self.max_retries - self.retries_used)

    @property
    def in_repair(self) -> bool:
        return self.retries_used > 0

    def enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.transitions.append(StageTransition(stage=stage, attempt=self.retries_used))
        logger.debug("Stage entered", stage=stage.value, attempt=self.retries_used)

    def begin_repair(self) -> int:
        """Consume one retry and return the repair pass number."""
        if not self.retries_remaining:
            raise RuntimeError("No retries remaining")
        self.retries_used += 1
        self.enter(PipelineStage.REPAIR)
        return self.retries_used

    def record(self, outcome: PassState) -> None:
        """Make a pass current; capture it as stable only if its runtime build passed."""
        self.current = outcome
        if outcome.runtime_passed:
            self.stable = outcome
            logger.info("Stable snapshot captured", attempt=outcome.attempt, files=len(outcome.project))

    def should_roll_back(self) -> bool:
        """A repair pass broke the runtime build while an earlier pass is known good."""
        if self.current is None or self.stable is None:
            return False
        return (
            self.in_repair
            and not self.current.runtime_passed
            and self.stable.attempt < self.current.attempt
        )

    def roll_back(self) -> PassState:
        """Restore the stable snapshot and stop further repairs."""
        if self.stable is None:
            raise RuntimeError("No stable snapshot to roll back to")
        self.enter(PipelineStage.ROLLBACK)
        restored = replace(self.stable, report=self.stable.report.without_retry())
        logger.warning(
            "Rolled back to stable snapshot",
            from_attempt=self.current.attempt if self.current else None,
            to_attempt=restored.attempt,
        )
        self.current = restored
        self.rolled_back = True
        return restored

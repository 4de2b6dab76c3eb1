"""
Quality Validation Service.

Combines the deterministic rule battery, a model functional review (run
concurrently) and heuristic visual scoring into one QualityReport.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from ...agents.base import AgentContext
from ...agents.reviewer import ReviewBrief, ReviewerAgent, ReviewVerdict
from ...core.logging import get_logger
from ...models.design import DesignSpec
from ...models.project import Project
from ...models.quality import QualityReport
from ...models.reference import ReferenceBundle
from ...models.request import OutputStack, QualityMode
from ..package_policy.responsive import responsive_warnings
from . import rules
from .syntax import syntax_diagnostics

logger = get_logger(__name__)


@dataclass
class RuleFindings:
    """Output of the deterministic rule battery."""

    deterministic_issues: list[str] = field(default_factory=list)
    responsive_warnings: list[str] = field(default_factory=list)
    visual_score: int = 0


def run_rule_battery(
    project: Project, stack: OutputStack, references: ReferenceBundle
) -> RuleFindings:
    """Every deterministic check, in a fixed order."""
    issues = rules.dedupe(
        [
            *rules.check_missing_html_references(project),
            *rules.check_runtime_structure(project, stack),
            *rules.check_tailwind_compatibility(project, stack),
            *rules.check_local_imports(project),
            *rules.check_dependency_declarations(project),
            *syntax_diagnostics(list(project.files)),
        ]
    )
    return RuleFindings(
        deterministic_issues=issues,
        responsive_warnings=responsive_warnings(project),
        visual_score=rules.visual_score(
            references.style_tokens, references.interaction_hints, project
        ),
    )


def compose_report(
    verdict: ReviewVerdict, findings: RuleFindings, mode: QualityMode
) -> QualityReport:
    """Apply the acceptance gate.

    Accepted only when the review passes with no issues at all, the visual
    score meets the mode threshold (function_first never gates on it) and
    there are no responsive warnings.
    """
    functional_issues = rules.dedupe([*verdict.critical_issues, *findings.deterministic_issues])
    functional_pass = verdict.functional_pass and not functional_issues

    threshold = rules.threshold_for(mode)
    visual_pass = threshold is None or findings.visual_score >= threshold
    responsive_pass = not findings.responsive_warnings
    accepted = functional_pass and visual_pass and responsive_pass

    issues = list(functional_issues)
    if not visual_pass:
        issues.append(
            f"Visual score {findings.visual_score} is below threshold {threshold} for mode {mode.value}."
        )
    if not responsive_pass:
        issues.append("Responsive checks failed.")

    patch_lines = rules.dedupe(
        [*findings.deterministic_issues, *issues, *findings.responsive_warnings]
    )[: rules.MAX_PATCH_LINES]
    sections = [verdict.patch_instructions.strip()]
    if patch_lines:
        sections.append(
            "Fix the following issues exactly:\n" + "\n".join(f"- {line}" for line in patch_lines)
        )
    patch_instructions = "\n\n".join(s for s in sections if s) or None

    return QualityReport(
        visual_score=findings.visual_score,
        functional_pass=functional_pass,
        issues=issues,
        accepted=accepted,
        retry_recommended=not accepted,
        patch_instructions=patch_instructions,
        responsive_warnings=findings.responsive_warnings,
    )


class QualityValidationService:
    """Service producing one QualityReport per validation pass."""

    def __init__(self, agent: ReviewerAgent) -> None:
        self.agent = agent

    async def validate(
        self,
        project: Project,
        spec: DesignSpec,
        stack: OutputStack,
        mode: QualityMode,
        references: ReferenceBundle,
        context: AgentContext,
    ) -> QualityReport:
        """Validate a project.

        Raises:
            ProviderError: If the reviewer call fails.
            CostLimitExceededError: If the reviewer call breaches the cap.
        """
        brief = ReviewBrief(spec=spec, output_stack=stack, files=list(project.files))
        review, findings = await asyncio.gather(
            self.agent.invoke(brief, context),
            asyncio.to_thread(run_rule_battery, project, stack, references),
        )
        report = compose_report(review.output, findings, mode)
        logger.info(
            "Quality validation completed",
            accepted=report.accepted,
            visual_score=report.visual_score,
            issues=len(report.issues),
            responsive_warnings=len(report.responsive_warnings),
        )
        return report

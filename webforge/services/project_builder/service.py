"""
Project Builder Service.

Turns a DesignSpec, plus repair instructions on a repair pass, into a complete
file set. Every call yields a whole new Project, never a diff.
"""

from __future__ import annotations

from ...agents.base import AgentContext
from ...agents.builder import BuildBrief, BuilderAgent
from ...core.logging import get_logger
from ...models.design import DesignSpec
from ...models.project import Project
from ...models.reference import ReferenceBundle
from ...models.request import OutputStack

logger = get_logger(__name__)


class ProjectBuilderService:
    """Service wrapping the Builder agent."""

    def __init__(self, agent: BuilderAgent) -> None:
        self.agent = agent

    async def build(
        self,
        spec: DesignSpec,
        output_stack: OutputStack,
        references: ReferenceBundle,
        context: AgentContext,
        *,
        repair_instructions: str | None = None,
        current: Project | None = None,
    ) -> Project:
        """Generate (or regenerate) the full project.

        Args:
            spec: Design blueprint
            output_stack: Requested stack
            references: Reference signals
            context: Invocation context
            repair_instructions: Merged patch text for a repair pass
            current: Files to patch on a repair pass

        Returns:
            A new immutable Project
        """
        brief = BuildBrief(
            spec=spec,
            output_stack=output_stack,
            references=references,
            repair_instructions=repair_instructions,
            existing_files=list(current.files) if current and repair_instructions else [],
        )
        response = await self.agent.invoke(brief, context)
        project = Project.from_files(response.output.files)
        logger.info(
            "Project built",
            files=len(project),
            repair=bool(repair_instructions),
            raw_fallback=response.used_fallback,
        )
        return project

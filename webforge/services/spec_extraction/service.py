"""
Spec Extraction Service.

Produces the DesignSpec for a request through one model call, falling back to
a deterministic spec when the reply is unusable.
"""

from __future__ import annotations

from ...agents.base import AgentContext
from ...agents.design_architect import DesignArchitectAgent, DesignBrief
from ...core.logging import get_logger
from ...models.design import (
    REQUIRED_FILE_PLAN,
    ComponentSpec,
    DesignSpec,
    LayoutSpec,
    VisualSystem,
)
from ...models.reference import ReferenceBundle
from ...models.request import OutputStack, QualityMode

logger = get_logger(__name__)

DEFAULT_PALETTE = [
    "#0f172a",
    "#1e293b",
    "#334155",
    "#3b82f6",
    "#8b5cf6",
    "#f8fafc",
    "#94a3b8",
    "#22d3ee",
]
DEFAULT_TYPOGRAPHY = [
    "font-family: system-ui, -apple-system, Inter, sans-serif",
    "font-weight: 700 headings",
    "font-weight: 400 body",
]
DEFAULT_SPACING = [
    "padding: 1rem (p-4)",
    "padding: 1.5rem (p-6)",
    "gap: 1rem (gap-4)",
    "gap: 1.5rem (gap-6)",
    "margin: 2rem section spacing",
]


def build_fallback_spec(references: ReferenceBundle, output_stack: OutputStack) -> DesignSpec:
    """Deterministic spec from whatever signals exist, else curated dark-theme defaults."""
    palette = references.hex_colors[:8]
    typography = references.tokens_with("font-family")[:4]
    spacing = [t for t in references.style_tokens if "padding" in t or "margin" in t][:6]
    return DesignSpec(
        app_name="Replica Studio",
        description=references.prompt[:140] or "Generated web app replica",
        output_stack=output_stack,
        layout=LayoutSpec(
            structure="Single-page app with header, main content area, and utility panels.",
            sections=["header", "main", "footer"],
            breakpoints=["375", "768", "1280"],
        ),
        visual_system=VisualSystem(
            palette=palette or DEFAULT_PALETTE,
            typography=typography or DEFAULT_TYPOGRAPHY,
            spacing=spacing or DEFAULT_SPACING,
        ),
        components=[
            ComponentSpec(name="Header", role="Navigation and branding", states=["default"]),
            ComponentSpec(name="MainContent", role="Primary UI rendering", states=["default", "loading"]),
            ComponentSpec(
                name="ActionControls", role="Primary interactions", states=["idle", "active", "disabled"]
            ),
        ],
        interactions=references.interaction_hints[:10],
        file_plan=list(REQUIRED_FILE_PLAN[output_stack]),
    )


def enforce_required_plan(spec: DesignSpec, output_stack: OutputStack) -> DesignSpec:
    """Pin the stack and replace the file plan with the stack's required file set."""
    return spec.model_copy(
        update={"output_stack": output_stack, "file_plan": list(REQUIRED_FILE_PLAN[output_stack])}
    )


class SpecExtractionService:
    """Service wrapping the Design Architect agent.

    Parse failures are recovered here and never reach the caller; provider
    and cost errors propagate.
    """

    def __init__(self, agent: DesignArchitectAgent) -> None:
        self.agent = agent

    async def extract(
        self,
        references: ReferenceBundle,
        output_stack: OutputStack,
        quality_mode: QualityMode,
        context: AgentContext,
    ) -> DesignSpec:
        """Produce the design blueprint for a request."""
        brief = DesignBrief(
            references=references,
            output_stack=output_stack,
            quality_mode=quality_mode,
            fallback=build_fallback_spec(references, output_stack),
        )
        response = await self.agent.invoke(brief, context)
        spec = enforce_required_plan(response.output, output_stack)
        logger.info(
            "Design spec extracted",
            app_name=spec.app_name,
            components=len(spec.components),
            used_fallback=response.used_fallback,
        )
        return spec

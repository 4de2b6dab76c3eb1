"""
Design Architect Agent.

Turns reference signals into a structured DesignSpec blueprint.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..models.design import DesignSpec
from ..models.reference import ReferenceBundle, ReferenceScreenshot
from ..models.request import OutputStack, QualityMode
from .base import Agent, PromptTemplate
from .client import safe_json_parse
from .registry import AgentRegistry

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

DESIGN_SPEC_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": [
        "appName",
        "description",
        "outputStack",
        "layout",
        "visualSystem",
        "components",
        "interactions",
        "filePlan",
    ],
    "properties": {
        "appName": {"type": "string"},
        "description": {"type": "string"},
        "outputStack": {"type": "string", "enum": [s.value for s in OutputStack]},
        "layout": {
            "type": "object",
            "additionalProperties": False,
            "required": ["structure", "sections", "breakpoints"],
            "properties": {
                "structure": {"type": "string"},
                "sections": _STRING_LIST,
                "breakpoints": _STRING_LIST,
            },
        },
        "visualSystem": {
            "type": "object",
            "additionalProperties": False,
            "required": ["palette", "typography", "spacing"],
            "properties": {
                "palette": _STRING_LIST,
                "typography": _STRING_LIST,
                "spacing": _STRING_LIST,
            },
        },
        "components": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["name", "role", "states"],
                "properties": {
                    "name": {"type": "string"},
                    "role": {"type": "string"},
                    "states": _STRING_LIST,
                },
            },
        },
        "interactions": _STRING_LIST,
        "filePlan": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["path", "purpose"],
                "properties": {"path": {"type": "string"}, "purpose": {"type": "string"}},
            },
        },
    },
}


class DesignBrief(BaseModel):
    """Input for the Design Architect Agent."""

    references: ReferenceBundle
    output_stack: OutputStack
    quality_mode: QualityMode
    fallback: DesignSpec = Field(description="Deterministic spec used when the reply is unusable")


def _lines(values: list[str]) -> str:
    return "\n".join(values) or "(none)"


@AgentRegistry.register
class DesignArchitectAgent(Agent[DesignBrief, DesignSpec]):
    """Agent that extracts a design blueprint from references.

    The reply is requested as strict JSON. When it cannot be parsed or does
    not validate, the brief's fallback spec is returned instead.
    """

    NAME = "design_architect"

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def description(self) -> str:
        return "Extracts a structured design specification from prompt and references"

    def get_prompt_template(self) -> PromptTemplate:
        return PromptTemplate(
            template_id="design_architect_v1",
            version="1.0.0",
            system_prompt="""You are the Design Architect of WebForge.

Produce a strict JSON specification for a web app that replicates the references.

Rules:
1) Visual fidelity to the references comes first, functional coverage second.
2) Never invent product features the inputs do not imply.
3) Runtime target by outputStack:
   - vanilla: plain files executed directly in the browser
   - react-tailwind: npm-runnable Vite project with ES modules
4) The file plan must match outputStack:
   - vanilla: index.html, styles.css, app.js
   - react-tailwind: package.json, index.html, src/main.tsx, src/App.tsx, src/styles.css, tailwind.config.js, postcss.config.js
5) Responsive behaviour is mandatory: viewport meta, mobile-first layout, breakpoints at 375px, 768px and 1280px.
6) Prefer exact color and spacing tokens taken from the references.
7) List concrete interactions for every critical user flow.
8) With screenshots present, capture granular tokens: exact hex colors, heading/body size ratios,
   border-radius patterns, shadow intensity and the layout grid.
9) Without any visual reference, use a dark slate palette with blue/violet accents,
   a system-ui/Inter font stack and a 4px/8px spacing grid.

Return ONLY JSON.""",
            user_prompt_template="""Prompt:
{prompt}

Output stack: {output_stack}

Quality mode: {quality_mode}

Reference confidence: {confidence}

DOM summary:
{dom_summary}

Style tokens:
{style_tokens}

Interaction hints:
{interaction_hints}

Warnings:
{warnings}""",
        )

    def json_schema(self) -> dict[str, Any] | None:
        return DESIGN_SPEC_SCHEMA

    def prepare_input(self, input_data: DesignBrief) -> dict[str, Any]:
        references = input_data.references
        return {
            "prompt": references.prompt or "(no text prompt provided)",
            "output_stack": input_data.output_stack.value,
            "quality_mode": input_data.quality_mode.value,
            "confidence": references.reference_confidence,
            "dom_summary": references.dom_summary or "(none)",
            "style_tokens": _lines(references.style_tokens),
            "interaction_hints": _lines(references.interaction_hints),
            "warnings": _lines(references.warnings),
        }

    def screenshots(self, input_data: DesignBrief) -> list[ReferenceScreenshot]:
        return input_data.references.reference_screenshots

    def parse_output(self, response_text: str, input_data: DesignBrief) -> tuple[DesignSpec, bool]:
        data = safe_json_parse(response_text)
        if not isinstance(data, dict):
            return input_data.fallback, True
        # the requested stack always wins
        data = {k: v for k, v in data.items() if k not in ("outputStack", "output_stack")}
        data["outputStack"] = input_data.output_stack.value
        try:
            return DesignSpec.model_validate(data), False
        except ValidationError:
            return input_data.fallback, True

    def validate_output(self, output: DesignSpec) -> list[str]:
        warnings = []
        if not output.components:
            warnings.append("Design spec lists no components")
        if not output.visual_system.palette:
            warnings.append("Design spec has an empty palette")
        return warnings

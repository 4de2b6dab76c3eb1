"""
Builder Agent.

Generates complete project sources from a DesignSpec, optionally repairing a
previous file set.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from ..models.design import DesignSpec, required_paths
from ..models.file_blocks import parse_file_blocks, serialize_file_blocks
from ..models.project import GeneratedFile
from ..models.reference import ReferenceBundle, ReferenceScreenshot
from ..models.request import OutputStack
from .base import Agent, PromptTemplate
from .registry import AgentRegistry

STACK_GUIDANCE = {
    OutputStack.REACT_TAILWIND: (
        "Generate modern React + Tailwind code with component architecture, hooks, "
        "and package imports when useful."
    ),
    OutputStack.VANILLA: "Use vanilla HTML/CSS/JS architecture with modular JS and semantic markup.",
}


class BuildBrief(BaseModel):
    """Input for the Builder Agent."""

    spec: DesignSpec
    output_stack: OutputStack
    references: ReferenceBundle
    repair_instructions: str | None = Field(default=None)
    existing_files: list[GeneratedFile] = Field(default_factory=list)


class BuildDraft(BaseModel):
    """Files produced by one builder call."""

    files: list[GeneratedFile] = Field(default_factory=list)


def _required_files_text(stack: OutputStack) -> str:
    if stack is OutputStack.REACT_TAILWIND:
        lines = ["Required React project files:"]
        lines += [f"- {path}" for path in required_paths(stack)]
        lines.append("- src/components/* (as needed)")
        return "\n".join(lines)
    return "Required vanilla files: " + ", ".join(required_paths(stack))


@AgentRegistry.register
class BuilderAgent(Agent[BuildBrief, BuildDraft]):
    """Agent for generating project files in the file-block format.

    A reply with no parseable blocks is kept whole as ``index.html`` so the
    request can still finish.
    """

    NAME = "builder"

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def description(self) -> str:
        return "Generates or repairs the full source tree of a web project"

    def get_prompt_template(self) -> PromptTemplate:
        return PromptTemplate(
            template_id="builder_v1",
            version="1.0.0",
            system_prompt="""You are the Builder agent of WebForge.

Generate complete source files for the provided specification.

Critical rules:
1) Output only file blocks:
---FILE: path/to/file.ext---
<content>
---END FILE---
2) Runtime target:
   - vanilla output must run directly in a browser without a build step
   - react-tailwind output must be npm-runnable (vite, ES modules, package.json)
3) Implement every interaction in the specification: forms, navigation, state updates, edge cases.
4) Follow the reference style tokens, spacing and layout hierarchy closely.
5) No markdown or explanations outside file blocks.
6) Files required by outputStack:
   - vanilla: index.html, styles.css, app.js
   - react-tailwind: package.json, index.html, src/main.tsx, src/App.tsx, src/styles.css, tailwind.config.js, postcss.config.js
7) Responsive baseline is mandatory:
   - include the viewport meta tag
   - mobile-first rules with breakpoints at 375px, 768px and 1280px
   - no horizontal overflow at any viewport
8) React output may use imports, modules and package dependencies.
""",
            user_prompt_template="""Output stack: {output_stack}

Stack guidance: {stack_guidance}

{required_files}

Responsive requirements: viewport meta + mobile-first + breakpoints 375/768/1280 + no horizontal overflow.

Reference confidence: {confidence}

Style tokens to mirror:
{style_tokens}

Interaction hints:
{interaction_hints}

Specification JSON:
{spec_json}{repair_section}""",
        )

    def prepare_input(self, input_data: BuildBrief) -> dict[str, Any]:
        references = input_data.references
        repair_section = ""
        if input_data.repair_instructions:
            repair_section = "\n\n".join(
                [
                    "",
                    f"Repair instructions:\n{input_data.repair_instructions}",
                    f"Current files to patch:\n{serialize_file_blocks(input_data.existing_files)}",
                    "Regenerate all files with fixes applied.",
                ]
            )
        return {
            "output_stack": input_data.output_stack.value,
            "stack_guidance": STACK_GUIDANCE[input_data.output_stack],
            "required_files": _required_files_text(input_data.output_stack),
            "confidence": references.reference_confidence,
            "style_tokens": "\n".join(references.style_tokens) or "(none)",
            "interaction_hints": "\n".join(references.interaction_hints) or "(none)",
            "spec_json": json.dumps(input_data.spec.to_wire(), indent=2),
            "repair_section": repair_section,
        }

    def screenshots(self, input_data: BuildBrief) -> list[ReferenceScreenshot]:
        return input_data.references.reference_screenshots

    def parse_output(self, response_text: str, input_data: BuildBrief) -> tuple[BuildDraft, bool]:
        files = parse_file_blocks(response_text)
        if files:
            return BuildDraft(files=files), False
        return BuildDraft(files=[GeneratedFile(path="index.html", content=response_text)]), True

    def validate_output(self, output: BuildDraft) -> list[str]:
        if len(output.files) == 1 and output.files[0].path == "index.html":
            return ["Builder returned a single file"]
        return []

"""
Reviewer Agent.

Functional QA review of a generated project.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..models.design import DesignSpec
from ..models.project import GeneratedFile
from ..models.request import OutputStack
from .base import Agent, PromptTemplate
from .client import safe_json_parse
from .registry import AgentRegistry


class ReviewBrief(BaseModel):
    """Input for the Reviewer Agent."""

    spec: DesignSpec
    output_stack: OutputStack
    files: list[GeneratedFile]


class ReviewVerdict(BaseModel):
    """Reviewer verdict. Accepts camelCase keys from the model."""

    functional_pass: bool = Field(default=False, alias="functionalPass")
    critical_issues: list[str] = Field(default_factory=list, alias="criticalIssues")
    patch_instructions: str = Field(default="", alias="patchInstructions")

    model_config = {"populate_by_name": True}

    @field_validator("functional_pass", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("critical_issues", mode="before")
    @classmethod
    def _issue_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if item is not None and str(item).strip()]

    @field_validator("patch_instructions", mode="before")
    @classmethod
    def _patch_text(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""


@AgentRegistry.register
class ReviewerAgent(Agent[ReviewBrief, ReviewVerdict]):
    """Agent that flags behavior-breaking issues in generated files.

    An unparseable reply counts as a failed review with no listed issues.
    """

    NAME = "reviewer"

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def description(self) -> str:
        return "Reviews generated files for behavior-breaking defects"

    def get_prompt_template(self) -> PromptTemplate:
        return PromptTemplate(
            template_id="reviewer_v1",
            version="1.0.0",
            system_prompt="""You are the QA Reviewer for generated web apps.

You will receive a design spec and generated files.
Return ONLY JSON:
{
  "functionalPass": boolean,
  "criticalIssues": ["..."],
  "patchInstructions": "..."
}

Rules:
1) Flag only behavior-breaking issues: missing handlers, broken flows, invalid JS references, fatal runtime errors.
2) If there are no critical issues, functionalPass must be true and criticalIssues empty.
3) patchInstructions must be concise and implementation-ready.
""",
            user_prompt_template="""Output stack: {output_stack}

Spec:
{spec_json}

Files:
{files_blob}""",
        )

    def prepare_input(self, input_data: ReviewBrief) -> dict[str, Any]:
        files_blob = "\n\n".join(
            f"### {f.path}\n```{f.language}\n{f.content}\n```" for f in input_data.files
        )
        return {
            "output_stack": input_data.output_stack.value,
            "spec_json": json.dumps(input_data.spec.to_wire(), indent=2),
            "files_blob": files_blob,
        }

    def parse_output(self, response_text: str, input_data: ReviewBrief) -> tuple[ReviewVerdict, bool]:
        data = safe_json_parse(response_text)
        if isinstance(data, dict):
            try:
                return ReviewVerdict.model_validate(data), False
            except ValidationError:
                pass
        return ReviewVerdict(functional_pass=False), True

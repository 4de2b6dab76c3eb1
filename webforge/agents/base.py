"""
Base agent abstraction.

Provides the core Agent interface with type-safe inputs/outputs, versioned
prompt templates, multimodal message assembly and non-raising output parsing.
Provider failures are never retried here; they propagate to the orchestrator.
"""

from __future__ import annotations

import hashlib
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from ..core.logging import get_logger
from ..core.types import utcnow
from ..models.reference import ReferenceScreenshot
from .client import ContentPart, LLMClient

logger = get_logger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


class AgentContext(BaseModel):
    """Context passed to agent invocations."""

    request_id: str = Field(description="Generation request identifier")
    stage: str = Field(description="Current pipeline stage")
    attempt: int = Field(default=0, description="Repair pass number, 0 for the first pass")
    max_tokens_override: int | None = Field(default=None)


class AgentResponse(BaseModel, Generic[OutputT]):
    """Response from an agent invocation."""

    output: OutputT
    used_fallback: bool = Field(default=False, description="Output synthesized after a parse failure")
    warnings: list[str] = Field(default_factory=list)

    # Metrics
    prompt_tokens: int = Field(default=0)
    completion_tokens: int = Field(default=0)
    cost_usd: float = Field(default=0.0)
    latency_ms: float = Field(default=0.0)

    # Provenance
    model_used: str = Field(default="")
    prompt_hash: str = Field(default="")
    timestamp: datetime = Field(default_factory=utcnow)


@dataclass
class PromptTemplate:
    """A versioned prompt template."""

    template_id: str
    version: str
    system_prompt: str
    user_prompt_template: str
    output_format_instructions: str = ""

    def render_system(self) -> str:
        return self.system_prompt

    def render_user(self, **kwargs: Any) -> str:
        """Render the user prompt with variables.

        Output format instructions are appended when present.
        """
        prompt = self.user_prompt_template.format(**kwargs)
        if self.output_format_instructions:
            prompt += f"\n\n{self.output_format_instructions}"
        return prompt

    def get_hash(self) -> str:
        """Get deterministic hash of the prompt template.

        Returns:
            str: A 16-character hexadecimal hash string.
        """
        content = f"{self.template_id}:{self.version}:{self.system_prompt}:{self.user_prompt_template}"
        return hashlib.sha256(content.encode()).hexdigest()[:16]


class Agent(ABC, Generic[InputT, OutputT]):
    """Base class for all WebForge agents.

    Agents are stateless wrappers around exactly one model call each. Parsing
    never raises: a malformed reply produces a deterministic fallback output.
    """

    def __init__(self, client: LLMClient, max_tokens: int) -> None:
        """Initialize the agent.

        Args:
            client: Request-scoped model client (carries the cost ledger).
            max_tokens: Output token budget for this agent's call.
        """
        self.client = client
        self.max_tokens = max_tokens

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique agent name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @abstractmethod
    def get_prompt_template(self) -> PromptTemplate:
        """Get the versioned prompt template for this agent."""
        ...

    @abstractmethod
    def prepare_input(self, input_data: InputT) -> dict[str, Any]:
        """Transform the typed input into template variables."""
        ...

    @abstractmethod
    def parse_output(self, response_text: str, input_data: InputT) -> tuple[OutputT, bool]:
        """Parse the model reply.

        Returns:
            The output model and whether it had to fall back to a synthesized
            value because the reply could not be parsed.
        """
        ...

    def screenshots(self, input_data: InputT) -> list[ReferenceScreenshot]:
        """Images to attach after the text part. None by default."""
        return []

    def json_schema(self) -> dict[str, Any] | None:
        """Structured-output schema for providers that enforce one."""
        return None

    def validate_output(self, output: OutputT) -> list[str]:
        """Return warnings about the parsed output. Override to add checks."""
        return []

    def build_parts(self, user_prompt: str, input_data: InputT) -> list[ContentPart]:
        parts = [ContentPart.of_text(user_prompt)]
        parts.extend(
            ContentPart.of_image(image.mime_type, image.base64)
            for image in self.screenshots(input_data)
        )
        return parts

    async def invoke(self, input_data: InputT, context: AgentContext) -> AgentResponse[OutputT]:
        """Invoke the agent with the given input.

        Raises:
            ProviderError: If the provider call fails.
            CostLimitExceededError: If the call pushes spend over the cap.
        """
        start_time = time.perf_counter()
        prompt_template = self.get_prompt_template()
        prompt_hash = prompt_template.get_hash()

        template_vars = self.prepare_input(input_data)
        system_prompt = prompt_template.render_system()
        user_prompt = prompt_template.render_user(**template_vars)

        logger.info(
            "Agent invocation started",
            agent=self.name,
            request_id=context.request_id,
            stage=context.stage,
            attempt=context.attempt,
            prompt_hash=prompt_hash,
        )

        result = await self.client.complete(
            system_prompt=system_prompt,
            parts=self.build_parts(user_prompt, input_data),
            max_tokens=context.max_tokens_override or self.max_tokens,
            label=self.name,
            json_schema=self.json_schema(),
        )

        output, used_fallback = self.parse_output(result.text, input_data)
        if used_fallback:
            logger.warning("Agent output unparseable, using fallback", agent=self.name)

        warnings = self.validate_output(output)
        if warnings:
            logger.warning("Agent output warnings", agent=self.name, warnings=warnings)

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Agent invocation completed",
            agent=self.name,
            latency_ms=round(latency_ms, 1),
            tokens=result.usage.total_tokens,
        )

        return AgentResponse(
            output=output,
            used_fallback=used_fallback,
            warnings=warnings,
            prompt_tokens=result.usage.input_tokens,
            completion_tokens=result.usage.output_tokens,
            cost_usd=result.usage.cost_usd,
            latency_ms=latency_ms,
            model_used=self.client.model,
            prompt_hash=prompt_hash,
        )

"""
Generation request models.

A request is validated synchronously, before any model call; anything that
fails here is reported as an ``InputValidationError`` and never reaches the
progress stream.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator

from ..core.exceptions import InputValidationError
from .base import WireModel

MAX_PROMPT_CHARS = 12_000
MAX_REFERENCE_URLS = 3
MAX_RETRIES_CEILING = 2
MIN_COST_CAP_USD = 0.05


class AIProvider(str, Enum):
    """Supported model providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @property
    def label(self) -> str:
        return "Claude" if self is AIProvider.ANTHROPIC else "GPT-4o"


class OutputStack(str, Enum):
    """Shape of the generated project."""

    REACT_TAILWIND = "react-tailwind"
    VANILLA = "vanilla"

    @property
    def is_framework(self) -> bool:
        return self is OutputStack.REACT_TAILWIND

    @property
    def label(self) -> str:
        return "React + Tailwind (Vite)" if self.is_framework else "Vanilla HTML/CSS/JS"


class QualityMode(str, Enum):
    """Quality gate strategy."""

    STRICT_VISUAL = "strict_visual"
    BALANCED = "balanced"
    FUNCTION_FIRST = "function_first"


_STACK_ALIASES = {"framework": "react-tailwind", "static": "vanilla"}


class UploadedImage(WireModel):
    """A screenshot uploaded with the request."""

    name: str = Field(default="upload")
    mime_type: str = Field(description="Image MIME type, e.g. image/png")
    base64: str = Field(min_length=1, description="Base64 payload without data: prefix")

    @field_validator("mime_type")
    @classmethod
    def _must_be_image(cls, value: str) -> str:
        if not value.lower().startswith("image/"):
            raise ValueError(f"unsupported image type {value!r}")
        return value.lower()


class AIConfig(WireModel):
    """Provider selection and credentials supplied by the caller."""

    provider: AIProvider = Field(default=AIProvider.ANTHROPIC)
    api_key: SecretStr = Field(description="Provider API key")
    model: str | None = Field(default=None, description="Optional model override")


class GenerationConstraints(WireModel):
    """Retry and spend guardrails, clamped into their legal ranges."""

    max_retries: int = Field(default=1)
    max_cost_usd: float = Field(default=1.0)

    @field_validator("max_retries", mode="before")
    @classmethod
    def _clamp_retries(cls, value: Any) -> int:
        if value is None:
            return 1
        return max(0, min(MAX_RETRIES_CEILING, int(value)))

    @field_validator("max_cost_usd", mode="before")
    @classmethod
    def _clamp_cost(cls, value: Any) -> float:
        if value is None:
            return 1.0
        return max(MIN_COST_CAP_USD, float(value))


class GenerationRequest(WireModel):
    """Everything one pipeline run needs from its caller."""

    prompt: str = Field(default="", max_length=MAX_PROMPT_CHARS)
    images: list[UploadedImage] = Field(default_factory=list)
    urls: list[str] = Field(default_factory=list, max_length=MAX_REFERENCE_URLS)
    config: AIConfig
    output_stack: OutputStack = Field(default=OutputStack.REACT_TAILWIND)
    quality_mode: QualityMode = Field(default=QualityMode.BALANCED)
    constraints: GenerationConstraints = Field(default_factory=GenerationConstraints)

    @field_validator("output_stack", mode="before")
    @classmethod
    def _stack_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _STACK_ALIASES.get(value.lower(), value.lower())
        return value

    @field_validator("quality_mode", mode="before")
    @classmethod
    def _mode_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower().replace("-", "_")
        return value

    @field_validator("urls", mode="before")
    @classmethod
    def _strip_urls(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(u).strip() for u in value if str(u).strip()]
        return value

    @model_validator(mode="after")
    def _require_inputs(self) -> GenerationRequest:
        if not self.config.api_key.get_secret_value().strip():
            raise ValueError("API key is required")
        if not self.prompt.strip() and not self.images and not self.urls:
            raise ValueError("A prompt, image, or reference URL is required")
        return self

    @classmethod
    def parse_payload(cls, payload: dict[str, Any]) -> GenerationRequest:
        """Validate a raw request body.

        Raises:
            InputValidationError: On any schema or semantic violation.
        """
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ())) or None
            message = str(first.get("msg", "invalid request")).removeprefix("Value error, ")
            raise InputValidationError(message=message, field_name=location, cause=e) from e

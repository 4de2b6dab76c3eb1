"""
Reference ingestion models.

A ReferenceBundle is assembled once per request from the prompt, uploaded
screenshots and any reference URLs, and is read-only afterwards.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator

from .base import FrozenWireModel, WireModel


class ReferenceScreenshot(FrozenWireModel):
    """Screenshot-style reference passed to vision-capable models."""

    source: Literal["upload", "url"]
    origin: str | None = Field(default=None, description="Page URL for captured screenshots")
    mime_type: str
    base64: str


class UrlReference(WireModel):
    """Signals extracted from one reference URL."""

    url: str
    final_url: str
    title: str = ""
    description: str = ""
    dom_summary: str = ""
    text_snippet: str = ""
    style_tokens: list[str] = Field(default_factory=list)
    interaction_hints: list[str] = Field(default_factory=list)
    js_heavy_likely: bool = False
    screenshot: ReferenceScreenshot | None = None
    warnings: list[str] = Field(default_factory=list)

    def context_block(self) -> str:
        """Human-readable summary used in model prompts."""
        return (
            f"URL: {self.final_url}\nTitle: {self.title}\nDescription: {self.description}\n"
            f"DOM: {self.dom_summary}\nText: {self.text_snippet}"
        )


def unique(values: list[str]) -> list[str]:
    """Trim, drop empties and deduplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        cleaned = value.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class ReferenceBundle(FrozenWireModel):
    """Normalized style and interaction signals for one request."""

    prompt: str = ""
    reference_screenshots: list[ReferenceScreenshot] = Field(default_factory=list)
    dom_summary: str = ""
    style_tokens: list[str] = Field(default_factory=list)
    interaction_hints: list[str] = Field(default_factory=list)
    reference_confidence: float = Field(default=0.1, ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)

    @field_validator("style_tokens", "interaction_hints", "warnings")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        return unique(value)

    def tokens_with(self, needle: str) -> list[str]:
        return [t for t in self.style_tokens if needle in t]

    @property
    def hex_colors(self) -> list[str]:
        return [t for t in self.style_tokens if t.startswith("#")]

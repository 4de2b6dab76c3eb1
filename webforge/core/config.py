"""
Configuration management for WebForge.

Settings are plain pydantic models. Entry points (CLI, HTTP app) build them
once via ``Settings.from_env()``; the pipeline itself only ever receives them
as explicit parameters.
"""

from __future__ import annotations

import os
import sys
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr


def _default_npm_command() -> list[str]:
    return ["npm.cmd"] if sys.platform == "win32" else ["npm"]


class ProviderDefaults(BaseModel):
    """Default model per provider and per-stage output budgets."""

    openai_model: str = Field(default="gpt-4o")
    anthropic_model: str = Field(default="claude-sonnet-4-20250514")
    request_timeout_seconds: float = Field(default=300.0, ge=10.0)
    spec_max_tokens: int = Field(default=3500, ge=256)
    builder_max_tokens: int = Field(default=16000, ge=1024)
    reviewer_max_tokens: int = Field(default=2000, ge=256)


class IngestionConfig(BaseModel):
    """Reference ingestion limits and screenshot provider settings."""

    max_html_bytes: int = Field(default=1_000_000, ge=10_000)
    max_image_bytes: int = Field(default=2_000_000, ge=10_000)
    request_timeout_seconds: float = Field(default=12.0, gt=0)
    max_redirects: int = Field(default=2, ge=0, le=5)
    max_text_snippet: int = Field(default=4000, ge=200)
    max_style_tokens: int = Field(default=80, ge=8)
    max_interaction_hints: int = Field(default=40, ge=5)
    user_agent: str = Field(default="WebForgeBot/1.0")
    screenshot_api_url: str = Field(default="https://api.firecrawl.dev/v1/scrape")
    screenshot_api_key: SecretStr | None = Field(default=None)


class PolicyConfig(BaseModel):
    """Package policy enforcement settings."""

    strict_package_allowlist: bool = Field(
        default=False, description="Drop unknown packages instead of retaining them"
    )


class RuntimeValidationConfig(BaseModel):
    """Sandboxed install/build check settings."""

    mode: Literal["auto", "off", "force"] = Field(default="auto")
    constrained_environment: bool = Field(
        default=False, description="Set when child processes are unavailable (serverless)"
    )
    timeout_seconds: float = Field(default=120.0, gt=0)
    kill_grace_seconds: float = Field(default=2.0, ge=0)
    max_output_chars: int = Field(default=30_000, ge=1_000)
    run_tests: bool = Field(default=False)
    npm_command: list[str] = Field(default_factory=_default_npm_command)


class StreamConfig(BaseModel):
    """Progress channel settings."""

    queue_size: int = Field(default=256, ge=8)
    send_timeout_seconds: float = Field(default=5.0, gt=0)


class Settings(BaseModel):
    """Root configuration for WebForge."""

    project_name: str = Field(default="WebForge")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    providers: ProviderDefaults = Field(default_factory=ProviderDefaults)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    runtime: RuntimeValidationConfig = Field(default_factory=RuntimeValidationConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_env(cls) -> Settings:
        """Create settings from environment variables, after loading any .env file."""
        load_dotenv()
        screenshot_key = os.environ.get("WEBFORGE_SCREENSHOT_API_KEY") or os.environ.get(
            "FIRECRAWL_API_KEY"
        )
        runtime_mode = os.environ.get("WEBFORGE_RUNTIME_VALIDATION", "auto").lower()
        if runtime_mode not in ("auto", "off", "force"):
            runtime_mode = "auto"
        return cls(
            log_level=os.environ.get("WEBFORGE_LOG_LEVEL", "INFO"),  # type: ignore
            ingestion=IngestionConfig(
                screenshot_api_key=SecretStr(screenshot_key) if screenshot_key else None,
            ),
            policy=PolicyConfig(
                strict_package_allowlist=os.environ.get("WEBFORGE_STRICT_PACKAGE_ALLOWLIST") == "1",
            ),
            runtime=RuntimeValidationConfig(
                mode=runtime_mode,  # type: ignore
                constrained_environment=os.environ.get("VERCEL") == "1",
                timeout_seconds=float(os.environ.get("WEBFORGE_RUNTIME_TIMEOUT", "120")),
                run_tests=os.environ.get("WEBFORGE_RUNTIME_TESTS") == "1",
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings for entry points."""
    return Settings.from_env()

"""
Model provider client.

Wraps the official async SDKs behind one call shape, estimates usage when the
provider omits it, and charges every call to the request's CostLedger the
moment it returns.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any

from ..core.config import ProviderDefaults
from ..core.exceptions import CostLimitExceededError, ProviderError
from ..core.logging import get_logger
from ..models.request import AIConfig, AIProvider

logger = get_logger(__name__)

# USD per million tokens (input, output)
PRICE_PER_MILLION: dict[AIProvider, tuple[float, float]] = {
    AIProvider.OPENAI: (5.0, 15.0),
    AIProvider.ANTHROPIC: (3.0, 15.0),
}


def estimate_tokens(text: str) -> int:
    """Rough token count used when the provider reports no usage."""
    if not text.strip():
        return 0
    return math.ceil(len(text) / 4)


def estimate_cost(provider: AIProvider, input_tokens: int, output_tokens: int) -> float:
    input_price, output_price = PRICE_PER_MILLION[provider]
    cost = (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price
    return round(cost, 4)


def safe_json_parse(raw: str) -> Any | None:
    """Parse loosely formatted model JSON.

    Tries a strict parse, then a parse with markdown fences removed, then the
    widest ``{...}`` span. Returns None when all three fail.
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    stripped = re.sub(r"```(?:json)?\n?", "", raw, flags=re.IGNORECASE)
    stripped = re.sub(r"```\s*$", "", stripped).strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass
    match = re.search(r"\{[\s\S]*\}", stripped)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError:
        return None


@dataclass(frozen=True)
class ContentPart:
    """Provider-neutral message part: text or a base64 image."""

    kind: str
    text: str = ""
    mime_type: str = ""
    data: str = ""

    @classmethod
    def of_text(cls, text: str) -> ContentPart:
        return cls(kind="text", text=text)

    @classmethod
    def of_image(cls, mime_type: str, data: str) -> ContentPart:
        return cls(kind="image", mime_type=mime_type, data=data)

    def to_provider(self, provider: AIProvider) -> dict[str, Any]:
        if self.kind == "text":
            return {"type": "text", "text": self.text}
        if provider is AIProvider.ANTHROPIC:
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": self.mime_type, "data": self.data},
            }
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{self.mime_type};base64,{self.data}"},
        }


@dataclass(frozen=True)
class TokenUsage:
    """Usage and estimated cost of one model call."""

    input_tokens: int
    output_tokens: int
    cost_usd: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class LLMResult:
    text: str
    usage: TokenUsage


@dataclass
class CostLedger:
    """Running, monotonically non-decreasing cost total for one request."""

    limit_usd: float
    total_usd: float = 0.0
    charges: list[tuple[str, float]] = field(default_factory=list)

    def charge(self, label: str, usage: TokenUsage) -> float:
        """Add a call's cost to the total.

        Raises:
            CostLimitExceededError: If the new total exceeds the cap. The
                charge is recorded first; spent money is not refunded.
        """
        self.total_usd = round(self.total_usd + max(0.0, usage.cost_usd), 4)
        self.charges.append((label, usage.cost_usd))
        logger.info(
            "Model call charged",
            call=label,
            cost_usd=usage.cost_usd,
            total_usd=self.total_usd,
            limit_usd=self.limit_usd,
        )
        if self.total_usd > self.limit_usd:
            raise CostLimitExceededError(
                message="Cost limit exceeded",
                total_cost_usd=self.total_usd,
                limit_usd=self.limit_usd,
            )
        return self.total_usd


class LLMClient:
    """Single-provider model client bound to one request's credentials."""

    def __init__(
        self,
        config: AIConfig,
        ledger: CostLedger,
        defaults: ProviderDefaults | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.defaults = defaults or ProviderDefaults()
        self._client: Any = None

    @property
    def provider(self) -> AIProvider:
        return self.config.provider

    @property
    def model(self) -> str:
        if self.config.model:
            return self.config.model
        if self.provider is AIProvider.ANTHROPIC:
            return self.defaults.anthropic_model
        return self.defaults.openai_model

    def _get_client(self) -> Any:
        """Lazily create the provider SDK client with SDK retries disabled."""
        if self._client is not None:
            return self._client

        api_key = self.config.api_key.get_secret_value()
        timeout = self.defaults.request_timeout_seconds
        if self.provider is AIProvider.OPENAI:
            import openai
            self._client = openai.AsyncOpenAI(api_key=api_key, max_retries=0, timeout=timeout)
        else:
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0, timeout=timeout)
        return self._client

    async def complete(
        self,
        *,
        system_prompt: str,
        parts: list[ContentPart],
        max_tokens: int,
        label: str,
        json_schema: dict[str, Any] | None = None,
    ) -> LLMResult:
        """Run one model call and charge it to the ledger.

        Raises:
            ProviderError: On any provider failure. Never retried.
            CostLimitExceededError: If this call pushes the total over the cap.
        """
        logger.info(
            "LLM request starting",
            provider=self.provider.value,
            model=self.model,
            call=label,
            max_tokens=max_tokens,
            parts=len(parts),
        )
        text, input_tokens, output_tokens = await self._send(
            system_prompt, parts, max_tokens, json_schema
        )
        if input_tokens is None:
            wire = json.dumps([p.to_provider(self.provider) for p in parts])
            input_tokens = estimate_tokens(system_prompt + wire)
        if output_tokens is None:
            output_tokens = estimate_tokens(text)
        usage = TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=estimate_cost(self.provider, input_tokens, output_tokens),
        )
        logger.info(
            "LLM response received",
            provider=self.provider.value,
            call=label,
            prompt_tokens=usage.input_tokens,
            completion_tokens=usage.output_tokens,
            response_chars=len(text),
        )
        self.ledger.charge(label, usage)
        return LLMResult(text=text, usage=usage)

    async def _send(
        self,
        system_prompt: str,
        parts: list[ContentPart],
        max_tokens: int,
        json_schema: dict[str, Any] | None,
    ) -> tuple[str, int | None, int | None]:
        """Provider round trip. Returns text and reported token counts."""
        if self.provider is AIProvider.ANTHROPIC:
            return await self._send_anthropic(system_prompt, parts, max_tokens)
        return await self._send_openai(system_prompt, parts, max_tokens, json_schema)

    async def _send_anthropic(
        self, system_prompt: str, parts: list[ContentPart], max_tokens: int
    ) -> tuple[str, int | None, int | None]:
        import anthropic

        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": [p.to_provider(self.provider) for p in parts]}
                ],
            )
        except anthropic.APIStatusError as e:
            raise ProviderError(
                message=e.message, provider="Anthropic", status_code=e.status_code, cause=e
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(message=str(e), provider="Anthropic", cause=e) from e

        text = next(
            (block.text for block in response.content or [] if getattr(block, "type", "") == "text"),
            "",
        )
        usage = response.usage
        return (
            text,
            getattr(usage, "input_tokens", None) if usage else None,
            getattr(usage, "output_tokens", None) if usage else None,
        )

    async def _send_openai(
        self,
        system_prompt: str,
        parts: list[ContentPart],
        max_tokens: int,
        json_schema: dict[str, Any] | None,
    ) -> tuple[str, int | None, int | None]:
        import openai

        client = self._get_client()
        kwargs: dict[str, Any] = {}
        if json_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "structured_output", "strict": True, "schema": json_schema},
            }
        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_completion_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": [p.to_provider(self.provider) for p in parts]},
                ],
                **kwargs,
            )
        except openai.APIStatusError as e:
            raise ProviderError(
                message=e.message, provider="OpenAI", status_code=e.status_code, cause=e
            ) from e
        except openai.APIError as e:
            raise ProviderError(message=str(e), provider="OpenAI", cause=e) from e

        text = (response.choices[0].message.content or "") if response.choices else ""
        usage = response.usage
        return (
            text,
            usage.prompt_tokens if usage else None,
            usage.completion_tokens if usage else None,
        )

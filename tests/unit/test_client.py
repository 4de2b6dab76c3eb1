"""Unit tests for the model provider client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from webforge.agents.client import (
    ContentPart,
    CostLedger,
    LLMClient,
    TokenUsage,
    estimate_cost,
    estimate_tokens,
    safe_json_parse,
)
from webforge.core.config import ProviderDefaults
from webforge.core.exceptions import CostLimitExceededError
from webforge.models.request import AIConfig, AIProvider


class TestEstimates:
    """Tests for token and cost estimation."""

    def test_estimate_tokens(self):
        """Roughly four characters per token, zero for blank text."""
        assert estimate_tokens("") == 0
        assert estimate_tokens("   ") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_estimate_cost(self):
        """Cost uses per-million prices and is rounded to four places."""
        assert estimate_cost(AIProvider.ANTHROPIC, 1000, 500) == pytest.approx(0.0105)
        assert estimate_cost(AIProvider.OPENAI, 1000, 500) == pytest.approx(0.0125)
        assert estimate_cost(AIProvider.OPENAI, 0, 0) == 0.0


class TestSafeJsonParse:
    """Tests for lenient JSON parsing."""

    def test_strict_json(self):
        assert safe_json_parse('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        """Markdown fences around the object are ignored."""
        assert safe_json_parse('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}

    def test_embedded_object(self):
        """The widest brace span is tried last."""
        assert safe_json_parse('Here you go: {"ok": true} Thanks!') == {"ok": True}

    def test_garbage_returns_none(self):
        assert safe_json_parse("not json at all") is None
        assert safe_json_parse("{broken") is None


class TestCostLedger:
    """Tests for the per-request cost ledger."""

    def test_accumulates(self):
        """Charges add up monotonically."""
        ledger = CostLedger(limit_usd=1.0)
        ledger.charge("a", TokenUsage(10, 10, 0.1))
        total = ledger.charge("b", TokenUsage(10, 10, 0.2))
        assert total == pytest.approx(0.3)
        assert [label for label, _ in ledger.charges] == ["a", "b"]

    def test_breach_raises_after_recording(self):
        """Exceeding the cap raises, but the spend stays recorded."""
        ledger = CostLedger(limit_usd=0.05)
        with pytest.raises(CostLimitExceededError) as exc_info:
            ledger.charge("builder", TokenUsage(1000, 1000, 0.06))
        assert ledger.total_usd == pytest.approx(0.06)
        assert exc_info.value.limit_usd == 0.05
        assert "Cost limit exceeded" in str(exc_info.value)

    def test_exactly_at_cap_is_allowed(self):
        ledger = CostLedger(limit_usd=0.1)
        assert ledger.charge("x", TokenUsage(1, 1, 0.1)) == pytest.approx(0.1)


class TestContentPart:
    """Tests for provider message parts."""

    def test_text_part(self):
        part = ContentPart.of_text("hello")
        assert part.to_provider(AIProvider.OPENAI) == {"type": "text", "text": "hello"}
        assert part.to_provider(AIProvider.ANTHROPIC) == {"type": "text", "text": "hello"}

    def test_image_part_per_provider(self):
        """Images use a base64 source for Anthropic and a data URL for OpenAI."""
        part = ContentPart.of_image("image/png", "AAAA")
        assert part.to_provider(AIProvider.ANTHROPIC) == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"},
        }
        assert part.to_provider(AIProvider.OPENAI) == {
            "type": "image_url",
            "image_url": {"url": "data:image/png;base64,AAAA"},
        }


class TestLLMClient:
    """Tests for the provider-neutral client."""

    def test_model_selection(self):
        """The request override wins over provider defaults."""
        defaults = ProviderDefaults()
        ledger = CostLedger(limit_usd=1.0)
        anthropic_client = LLMClient(AIConfig(provider="anthropic", api_key="k"), ledger, defaults)
        openai_client = LLMClient(AIConfig(provider="openai", api_key="k", model="gpt-x"), ledger, defaults)
        assert anthropic_client.model == defaults.anthropic_model
        assert openai_client.model == "gpt-x"

    @pytest.mark.asyncio
    async def test_complete_charges_reported_usage(self, scripted_client, ledger):
        """Reported token counts are priced and charged."""
        client = scripted_client({"builder": ["hello"]})
        result = await client.complete(
            system_prompt="sys", parts=[ContentPart.of_text("hi")], max_tokens=100, label="builder"
        )
        assert result.text == "hello"
        assert result.usage.input_tokens == 1000
        assert ledger.total_usd == pytest.approx(0.0105)

    @pytest.mark.asyncio
    async def test_complete_estimates_missing_usage(self, scripted_client, ledger):
        """Usage is estimated from text when the provider reports none."""
        client = scripted_client({"reviewer": [("x" * 400, None, None)]})
        result = await client.complete(
            system_prompt="s" * 40, parts=[ContentPart.of_text("hi")], max_tokens=100, label="reviewer"
        )
        assert result.usage.output_tokens == 100
        assert result.usage.input_tokens > 10
        assert ledger.total_usd > 0

    @pytest.mark.asyncio
    async def test_complete_raises_on_cost_breach(self, scripted_client, ledger):
        """A reply that pushes the total over the cap raises immediately."""
        client = scripted_client({"builder": [("big", 100_000, 100_000)]})
        with pytest.raises(CostLimitExceededError):
            await client.complete(
                system_prompt="sys", parts=[ContentPart.of_text("hi")], max_tokens=100, label="builder"
            )
        assert ledger.total_usd > ledger.limit_usd

    @pytest.mark.asyncio
    async def test_openai_round_trip(self):
        """The OpenAI path sends a system message and a structured schema."""
        client = LLMClient(AIConfig(provider="openai", api_key="k"), CostLedger(limit_usd=1.0))
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))],
            usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5),
        )
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(return_value=response)
        client._client = sdk

        result = await client.complete(
            system_prompt="sys",
            parts=[ContentPart.of_text("hi")],
            max_tokens=50,
            label="design_architect",
            json_schema={"type": "object"},
        )

        assert result.text == '{"a": 1}'
        assert result.usage.total_tokens == 15
        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["response_format"]["json_schema"]["schema"] == {"type": "object"}
        assert kwargs["max_completion_tokens"] == 50

    @pytest.mark.asyncio
    async def test_anthropic_round_trip(self):
        """The Anthropic path reads the first text block."""
        client = LLMClient(AIConfig(provider="anthropic", api_key="k"), CostLedger(limit_usd=1.0))
        response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="files")],
            usage=SimpleNamespace(input_tokens=20, output_tokens=7),
        )
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(return_value=response)
        client._client = sdk

        result = await client.complete(
            system_prompt="sys", parts=[ContentPart.of_text("hi")], max_tokens=50, label="builder"
        )

        assert result.text == "files"
        assert (result.usage.input_tokens, result.usage.output_tokens) == (20, 7)
        assert sdk.messages.create.call_args.kwargs["system"] == "sys"

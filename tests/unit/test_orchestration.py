"""Unit tests for pipeline orchestration."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import (
    DESIGN_SPEC_REPLY,
    REVIEW_FAIL,
    REVIEW_PASS,
    VANILLA_BUILD_REPLY,
    ScriptedClientFactory,
    file_blocks,
)
from webforge.agents.client import CostLedger
from webforge.core.config import StreamConfig
from webforge.core.exceptions import ProviderError
from webforge.core.types import PipelineStage
from webforge.models.events import EventType, StreamChunk
from webforge.models.quality import RuntimeBuildValidationResult, RuntimePhase
from webforge.orchestration import (
    EventChannel,
    GenerationPipeline,
    OrchestrationState,
    stream_generation,
)

HAPPY_SCRIPT = {
    "design_architect": [DESIGN_SPEC_REPLY],
    "builder": [VANILLA_BUILD_REPLY],
    "reviewer": [REVIEW_PASS],
}


async def run_and_collect(pipeline, request, settings):
    """Run to completion, then drain every line the run produced."""
    channel = EventChannel(settings.stream)
    result = await pipeline.run(request, channel)
    lines = [json.loads(line) async for line in channel.stream()]
    return result, lines


def events(lines, event_type=None):
    found = [line["event"] for line in lines if line["type"] == "event"]
    if event_type is not None:
        found = [event for event in found if event["type"] == event_type]
    return found


class TestAcceptedRun:
    """Tests for a run that passes on the first attempt."""

    @pytest.mark.asyncio
    async def test_stream_ordering(self, settings, make_request):
        """Files, then metadata, then the complete event, then done."""
        factory = ScriptedClientFactory(HAPPY_SCRIPT)
        pipeline = GenerationPipeline(settings, client_factory=factory)

        result, lines = await run_and_collect(pipeline, make_request(), settings)

        assert result.success and result.accepted
        tail = [line["type"] for line in lines[-7:]]
        assert tail == ["file", "file", "file", "file", "metadata", "event", "done"]
        assert [line["file"]["path"] for line in lines if line["type"] == "file"] == [
            "index.html",
            "styles.css",
            "app.js",
            "package.json",
        ]
        complete = lines[-2]["event"]
        assert (complete["type"], complete["message"], complete["progress"]) == (
            "complete",
            "Generation complete!",
            100,
        )
        assert not any(line["type"] == "error" for line in lines)

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, settings, make_request):
        pipeline = GenerationPipeline(settings, client_factory=ScriptedClientFactory(HAPPY_SCRIPT))
        _, lines = await run_and_collect(pipeline, make_request(), settings)

        progress = [event["progress"] for event in events(lines)]
        assert progress == sorted(progress)
        assert progress[0] == 5
        assert progress[-1] == 100
        assert events(lines, "planning")[-1]["message"] == "Planned 3 files for Task Board"

    @pytest.mark.asyncio
    async def test_metadata_and_cost(self, settings, make_request):
        factory = ScriptedClientFactory(HAPPY_SCRIPT)
        pipeline = GenerationPipeline(settings, client_factory=factory)

        result, lines = await run_and_collect(pipeline, make_request(), settings)

        [metadata] = [line["metadata"] for line in lines if line["type"] == "metadata"]
        assert metadata["name"] == "Task Board"
        assert metadata["framework"] == "Vanilla HTML/CSS/JS"
        assert metadata["accepted"] is True
        assert metadata["retriesUsed"] == 0
        assert metadata["visualScore"] == 72
        assert metadata["runtimeHint"]["preferredRuntime"] == "static"
        assert [call["label"] for call in factory.calls] == ["design_architect", "builder", "reviewer"]
        assert result.total_cost_usd == pytest.approx(0.0315)
        assert result.runtime.skipped
        assert result.transitions[-1].stage is PipelineStage.DONE


class TestRepairLoop:
    """Tests for repair passes and best-effort output."""

    @pytest.mark.asyncio
    async def test_repair_pass_fixes_review(self, settings, make_request):
        factory = ScriptedClientFactory(
            {**HAPPY_SCRIPT, "builder": [VANILLA_BUILD_REPLY, VANILLA_BUILD_REPLY], "reviewer": [REVIEW_FAIL, REVIEW_PASS]}
        )
        pipeline = GenerationPipeline(settings, client_factory=factory)

        result, lines = await run_and_collect(pipeline, make_request(), settings)

        assert result.accepted is True
        assert result.retries_used == 1
        assert any(event["message"] == "Applying repair pass 1/1..." for event in events(lines, "coding"))
        builder_calls = [call for call in factory.calls if call["label"] == "builder"]
        assert len(builder_calls) == 2
        assert "Wire the add button." in builder_calls[1]["parts"][0].text
        assert "---FILE: app.js---" in builder_calls[1]["parts"][0].text

    @pytest.mark.asyncio
    async def test_no_retries_returns_best_effort(self, settings, make_request):
        factory = ScriptedClientFactory({**HAPPY_SCRIPT, "reviewer": [REVIEW_FAIL]})
        pipeline = GenerationPipeline(settings, client_factory=factory)
        request = make_request(constraints={"maxRetries": 0})

        result, lines = await run_and_collect(pipeline, request, settings)

        assert result.success is True
        assert result.accepted is False
        assert result.best_effort is True
        assert lines[-1] == {"type": "done"}
        assert lines[-2]["event"]["message"] == "Generation complete (best effort)."
        [metadata] = [line["metadata"] for line in lines if line["type"] == "metadata"]
        assert any("best-effort" in note for note in metadata["notes"])
        assert len([call for call in factory.calls if call["label"] == "builder"]) == 1

    @pytest.mark.asyncio
    async def test_retries_stop_at_cap(self, settings, make_request):
        """A gate that never passes consumes exactly max_retries repairs."""
        factory = ScriptedClientFactory({**HAPPY_SCRIPT, "reviewer": [REVIEW_FAIL]})
        pipeline = GenerationPipeline(settings, client_factory=factory)

        result, _ = await run_and_collect(pipeline, make_request(constraints={"maxRetries": 2}), settings)

        assert result.retries_used == 2
        assert len([call for call in factory.calls if call["label"] == "builder"]) == 3
        assert result.report.retry_recommended is True


class TestRuntimeRollback:
    """Tests for restoring the last runtime-passing output."""

    @pytest.mark.asyncio
    async def test_rollback_restores_first_pass(self, settings, make_request):
        first = file_blocks({"src/App.tsx": "export default function App() { return <p>v1</p>; }\n"})
        second = file_blocks({"src/App.tsx": "export default function App() { return <p>v2</p>; }\n"})
        factory = ScriptedClientFactory(
            {**HAPPY_SCRIPT, "builder": [first, second], "reviewer": [REVIEW_FAIL, REVIEW_PASS]}
        )
        runtime = MagicMock()
        runtime.validate = AsyncMock(
            side_effect=[
                RuntimeBuildValidationResult(passed=True, phase=RuntimePhase.BUILD),
                RuntimeBuildValidationResult(
                    passed=False,
                    phase=RuntimePhase.BUILD,
                    issues=["Runtime build command failed.", "error TS2304: Cannot find name 'Widget'."],
                ),
            ]
        )
        pipeline = GenerationPipeline(settings, client_factory=factory, runtime_validator=runtime)
        request = make_request(outputStack="react-tailwind", constraints={"maxRetries": 1})

        result, lines = await run_and_collect(pipeline, request, settings)

        assert result.rolled_back is True
        assert result.accepted is False
        app = next(f for f in result.files if f.path == "src/App.tsx")
        assert "v1" in app.content
        assert result.runtime.passed is True
        assert result.report.retry_recommended is False
        assert len(events(lines, "runtime_fallback")) == 1
        [metadata] = [line["metadata"] for line in lines if line["type"] == "metadata"]
        assert any("last runtime-passing output" in note for note in metadata["notes"])
        assert lines[-1] == {"type": "done"}

    @pytest.mark.asyncio
    async def test_skipped_runtime_never_rolls_back(self, settings, make_request):
        factory = ScriptedClientFactory(
            {**HAPPY_SCRIPT, "builder": [VANILLA_BUILD_REPLY, VANILLA_BUILD_REPLY], "reviewer": [REVIEW_FAIL]}
        )
        pipeline = GenerationPipeline(settings, client_factory=factory)

        result, lines = await run_and_collect(pipeline, make_request(), settings)

        assert result.rolled_back is False
        assert events(lines, "runtime_fallback") == []


class TestFatalErrors:
    """Tests for fatal conditions producing exactly one error line."""

    @pytest.mark.asyncio
    async def test_cost_breach(self, settings, make_request):
        factory = ScriptedClientFactory({**HAPPY_SCRIPT, "builder": [(VANILLA_BUILD_REPLY, 100_000, 100_000)]})
        pipeline = GenerationPipeline(settings, client_factory=factory)
        request = make_request(constraints={"maxCostUsd": 0.05})

        result, lines = await run_and_collect(pipeline, request, settings)

        assert result.success is False
        assert [line["type"] for line in lines].count("error") == 1
        assert lines[-1]["type"] == "error"
        assert lines[-1]["error"].startswith("Cost limit exceeded:")
        assert not any(line["type"] in ("file", "metadata", "done") for line in lines)
        assert result.total_cost_usd > 0.05
        assert result.transitions[-1].stage is PipelineStage.FATAL

    @pytest.mark.asyncio
    async def test_provider_error_is_not_retried(self, settings, make_request):
        error = ProviderError(message="invalid x-api-key", provider="Anthropic", status_code=401)
        factory = ScriptedClientFactory({"design_architect": [error]})
        pipeline = GenerationPipeline(settings, client_factory=factory)

        result, lines = await run_and_collect(pipeline, make_request(), settings)

        assert result.error == "Anthropic API error (401): invalid x-api-key"
        assert lines[-1] == {"type": "error", "error": "Anthropic API error (401): invalid x-api-key"}
        assert [call["label"] for call in factory.calls] == ["design_architect"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_names_stage(self, settings, make_request):
        ingestion = MagicMock()
        ingestion.ingest = AsyncMock(side_effect=RuntimeError("boom"))
        pipeline = GenerationPipeline(
            settings, client_factory=ScriptedClientFactory(HAPPY_SCRIPT), ingestion=ingestion
        )

        result, lines = await run_and_collect(pipeline, make_request(), settings)

        assert result.error == "Generation failed during ingest: boom"
        assert [line["type"] for line in lines] == ["event", "error"]

    @pytest.mark.asyncio
    async def test_build_without_spec_is_pipeline_error(self, settings, make_request, monkeypatch):
        """Reaching the build stage with no design spec fails the run cleanly."""
        factory = ScriptedClientFactory(HAPPY_SCRIPT)
        pipeline = GenerationPipeline(settings, client_factory=factory)
        monkeypatch.setattr(pipeline, "_prepare", AsyncMock(return_value=None))

        result, lines = await run_and_collect(pipeline, make_request(), settings)

        assert result.error == "Generation failed during ingest: Design spec and references are not available yet"
        assert lines == [{"type": "error", "error": result.error}]
        assert factory.calls == []


class TestIsolation:
    """Concurrent runs never share state."""

    @pytest.mark.asyncio
    async def test_concurrent_runs(self, settings, make_request):
        pipeline = GenerationPipeline(settings, client_factory=ScriptedClientFactory(HAPPY_SCRIPT))
        first, second = await asyncio.gather(
            pipeline.run(make_request()),
            pipeline.run(make_request(prompt="Build a timer")),
        )
        assert first.request_id != second.request_id
        assert first.total_cost_usd == pytest.approx(0.0315)
        assert second.total_cost_usd == pytest.approx(0.0315)


class TestOrchestrationState:
    """Tests for retry and rollback bookkeeping."""

    def test_begin_repair_consumes_retries(self):
        state = OrchestrationState(ledger=CostLedger(limit_usd=1.0), max_retries=1)
        assert state.begin_repair() == 1
        assert state.stage is PipelineStage.REPAIR
        assert state.retries_remaining == 0
        with pytest.raises(RuntimeError):
            state.begin_repair()

    def test_no_rollback_without_stable_snapshot(self):
        state = OrchestrationState(ledger=CostLedger(limit_usd=1.0), max_retries=1)
        assert state.should_roll_back() is False
        with pytest.raises(RuntimeError):
            state.roll_back()


class TestEventChannel:
    """Tests for the bounded progress channel."""

    @pytest.mark.asyncio
    async def test_slow_consumer_is_detached(self):
        """A full queue past the send timeout detaches; terminal lines still land."""
        channel = EventChannel(StreamConfig(queue_size=8, send_timeout_seconds=0.05))
        for i in range(8):
            assert await channel.emit(EventType.CODING, f"step {i}", i) is True

        assert await channel.emit(EventType.CODING, "overflow", 50) is False
        assert channel.detached is True
        assert await channel.emit(EventType.CODING, "dropped", 60) is False

        assert await channel.send(StreamChunk.for_error("boom")) is True
        channel.close()
        lines = [json.loads(line) async for line in channel.stream()]

        assert lines[-1] == {"type": "error", "error": "boom"}
        assert len(lines) <= 8
        assert channel.dropped >= 3

    @pytest.mark.asyncio
    async def test_send_after_close(self):
        channel = EventChannel()
        channel.close()
        assert await channel.send(StreamChunk.done()) is False
        assert [line async for line in channel.stream()] == []


class TestStreamGeneration:
    """Tests for the NDJSON line iterator."""

    @pytest.mark.asyncio
    async def test_yields_until_done(self, settings, make_request):
        pipeline = GenerationPipeline(settings, client_factory=ScriptedClientFactory(HAPPY_SCRIPT))
        lines = [line async for line in stream_generation(make_request(), settings, pipeline=pipeline)]
        assert all(line.endswith("\n") for line in lines)
        assert json.loads(lines[-1]) == {"type": "done"}

    @pytest.mark.asyncio
    async def test_early_close_cancels_run(self, settings, make_request):
        """Abandoning the stream stops the pipeline promptly."""
        cancelled = asyncio.Event()

        async def slow_ingest(request):
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        ingestion = MagicMock()
        ingestion.ingest = slow_ingest
        pipeline = GenerationPipeline(
            settings, client_factory=ScriptedClientFactory(HAPPY_SCRIPT), ingestion=ingestion
        )

        stream = stream_generation(make_request(), settings, pipeline=pipeline)
        first = await stream.__anext__()
        assert json.loads(first)["event"]["type"] == "ingesting"
        await asyncio.wait_for(stream.aclose(), timeout=5)

        assert cancelled.is_set()

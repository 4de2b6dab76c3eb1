"""
Main pipeline orchestration for WebForge.

Drives one generation request through the state machine

    Ingest -> Spec -> Build -> Policy -> Validate -> RuntimeValidate
        -> Accept | Repair -> Build ... | Rollback -> Finalize -> Done | Fatal

streaming every transition on an EventChannel.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from ..agents.base import AgentContext
from ..agents.client import CostLedger, LLMClient
from ..agents.registry import AgentRegistry
from ..core.config import ProviderDefaults, Settings
from ..core.exceptions import PipelineError, WebForgeError
from ..core.logging import bind_context, clear_context, get_logger
from ..core.types import PipelineStage, StageTransition, utcnow
from ..models.design import DesignSpec
from ..models.events import EventType, StreamChunk
from ..models.project import GeneratedFile, Project, ProjectMetadata
from ..models.quality import QualityReport, RuntimeBuildValidationResult
from ..models.reference import ReferenceBundle
from ..models.request import AIConfig, GenerationRequest, OutputStack, QualityMode
from ..services.ingestion import ReferenceIngestionService
from ..services.package_policy import PackagePolicyService
from ..services.project_builder import ProjectBuilderService
from ..services.quality import QualityValidationService
from ..services.runtime_validation import RuntimeBuildValidator
from ..services.spec_extraction import SpecExtractionService
from .events import EventChannel
from .state import OrchestrationState, PassState

logger = get_logger(__name__)

ClientFactory = Callable[[AIConfig, CostLedger, ProviderDefaults], LLMClient]


@dataclass
class GenerationResult:
    """Final outcome of one request, mirrored on the progress stream."""

    request_id: str
    files: list[GeneratedFile] = field(default_factory=list)
    metadata: ProjectMetadata | None = None
    report: QualityReport | None = None
    runtime: RuntimeBuildValidationResult | None = None
    accepted: bool = False
    best_effort: bool = False
    rolled_back: bool = False
    retries_used: int = 0
    total_cost_usd: float = 0.0
    transitions: list[StageTransition] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class _RequestScope:
    """Per-request collaborators and inputs threaded through every stage."""

    request_id: str
    request: GenerationRequest
    state: OrchestrationState
    channel: EventChannel
    builder: ProjectBuilderService
    quality: QualityValidationService
    references: ReferenceBundle | None = None
    spec: DesignSpec | None = None

    @property
    def stack(self) -> OutputStack:
        return self.request.output_stack

    @property
    def mode(self) -> QualityMode:
        return self.request.quality_mode

    def planned(self) -> tuple[DesignSpec, ReferenceBundle]:
        """Spec and references produced by the planning stages.

        Raises:
            PipelineError: If a build stage is reached before planning completed.
        """
        if self.spec is None or self.references is None:
            raise PipelineError(
                message="Design spec and references are not available yet",
                stage=self.state.stage.value,
                request_id=self.request_id,
            )
        return self.spec, self.references

    def current_pass(self) -> PassState:
        current = self.state.current
        if current is None:
            raise PipelineError(
                message="No validation pass has been recorded",
                stage=self.state.stage.value,
                request_id=self.request_id,
            )
        return current

    def context(self) -> AgentContext:
        return AgentContext(
            request_id=self.request_id,
            stage=self.state.stage.value,
            attempt=self.state.retries_used,
        )


def _fatal_message(error: Exception) -> str:
    if isinstance(error, PipelineError):
        return f"Generation failed during {error.stage}: {error.message}"
    return str(error) or "Unknown error occurred"


class GenerationPipeline:
    """High-level pipeline interface; one instance may serve many requests.

    No state is shared between runs: every call to ``run`` gets its own cost
    ledger, retry counter, model client and event channel.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client_factory: ClientFactory = LLMClient,
        ingestion: ReferenceIngestionService | None = None,
        policy: PackagePolicyService | None = None,
        runtime_validator: RuntimeBuildValidator | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Explicit configuration for every stage
            client_factory: Builds the per-request model client
            ingestion: Reference ingestion service override
            policy: Package policy service override
            runtime_validator: Runtime build validator override
        """
        self.settings = settings
        self.client_factory = client_factory
        self.ingestion = ingestion or ReferenceIngestionService(settings.ingestion)
        self.policy = policy or PackagePolicyService(settings.policy)
        self.runtime_validator = runtime_validator or RuntimeBuildValidator(settings.runtime)

    async def run(self, request: GenerationRequest, channel: EventChannel | None = None) -> GenerationResult:
        """Execute one generation request.

        Fatal conditions (provider errors, cost-cap breach, unexpected
        exceptions) produce exactly one ``error`` line. The channel is closed on
        every exit path, including cancellation.

        Args:
            request: Validated generation request
            channel: Progress channel; a private one is created if omitted

        Returns:
            GenerationResult describing files, report and cost
        """
        request_id = uuid.uuid4().hex[:8]
        channel = channel or EventChannel(self.settings.stream)
        state = OrchestrationState(
            ledger=CostLedger(limit_usd=request.constraints.max_cost_usd),
            max_retries=request.constraints.max_retries,
        )
        bind_context(request_id=request_id, provider=request.config.provider.value)
        logger.info(
            "Generation started",
            output_stack=request.output_stack.value,
            quality_mode=request.quality_mode.value,
            max_retries=state.max_retries,
            max_cost_usd=state.ledger.limit_usd,
        )

        try:
            client = self.client_factory(request.config, state.ledger, self.settings.providers)
            providers = self.settings.providers
            architect = AgentRegistry.create("design_architect", client, providers.spec_max_tokens)
            builder = AgentRegistry.create("builder", client, providers.builder_max_tokens)
            reviewer = AgentRegistry.create("reviewer", client, providers.reviewer_max_tokens)

            scope = _RequestScope(
                request_id=request_id,
                request=request,
                state=state,
                channel=channel,
                builder=ProjectBuilderService(builder),
                quality=QualityValidationService(reviewer),
            )
            await self._prepare(scope, SpecExtractionService(architect))
            await self._generate(scope)
            return await self._finalize(scope)
        except WebForgeError as e:
            return await self._fail(request_id, state, channel, e)
        except Exception as e:
            logger.exception("Unexpected pipeline failure", stage=state.stage.value)
            error = PipelineError(
                message=str(e) or type(e).__name__,
                stage=state.stage.value,
                request_id=request_id,
                cause=e,
            )
            return await self._fail(request_id, state, channel, error)
        finally:
            channel.close()
            clear_context()

    async def _fail(
        self,
        request_id: str,
        state: OrchestrationState,
        channel: EventChannel,
        error: Exception,
    ) -> GenerationResult:
        failed_stage = state.stage
        state.enter(PipelineStage.FATAL)
        message = _fatal_message(error)
        logger.error("Generation failed", stage=failed_stage.value, error=message)
        await channel.send(StreamChunk.for_error(message))
        return GenerationResult(
            request_id=request_id,
            retries_used=state.retries_used,
            total_cost_usd=state.total_cost_usd,
            transitions=list(state.transitions),
            error=message,
        )

    async def _prepare(self, scope: _RequestScope, extractor: SpecExtractionService) -> None:
        """Ingest references and extract the design spec."""
        state, channel = scope.state, scope.channel

        state.enter(PipelineStage.INGEST)
        await channel.emit(EventType.INGESTING, "Ingesting references...", 5)
        references = await self.ingestion.ingest(scope.request)
        scope.references = references
        message = f"Reference confidence {round(references.reference_confidence * 100)}%"
        if references.warnings:
            message += f" ({len(references.warnings)} warning(s))"
        await channel.emit(EventType.ANALYZING, message, 12)

        state.enter(PipelineStage.SPEC)
        await channel.emit(
            EventType.PLANNING,
            f"Extracting design spec with {scope.request.config.provider.label}...",
            20,
        )
        scope.spec = await extractor.extract(references, scope.stack, scope.mode, scope.context())
        await channel.emit(
            EventType.PLANNING,
            f"Planned {len(scope.spec.file_plan)} files for {scope.spec.app_name}",
            28,
        )

    async def _generate(self, scope: _RequestScope) -> None:
        """First build pass followed by the accept/repair/rollback loop."""
        state, channel = scope.state, scope.channel
        spec, references = scope.planned()

        state.enter(PipelineStage.BUILD)
        await channel.emit(EventType.CODING, f"Generating {scope.stack.label} project...", 35)
        project = await scope.builder.build(spec, scope.stack, references, scope.context())
        state.record(await self._validate_pass(scope, project))

        while True:
            current = scope.current_pass()
            if current.report.accepted:
                state.enter(PipelineStage.ACCEPT)
                return
            if state.should_roll_back():
                restored = state.roll_back()
                await channel.emit(
                    EventType.RUNTIME_FALLBACK,
                    f"Repair broke the runtime build; restored output from pass {restored.attempt + 1}",
                    90,
                )
                return
            if not (current.report.retry_recommended and state.retries_remaining):
                logger.warning(
                    "Finalizing best-effort output",
                    retries_used=state.retries_used,
                    issues=len(current.report.issues),
                )
                return

            attempt = state.begin_repair()
            await channel.emit(
                EventType.CODING,
                f"Applying repair pass {attempt}/{state.max_retries}...",
                40,
            )
            project = await scope.builder.build(
                spec,
                scope.stack,
                references,
                scope.context(),
                repair_instructions=current.report.patch_instructions,
                current=current.project,
            )
            state.record(await self._validate_pass(scope, project))

    async def _validate_pass(self, scope: _RequestScope, project: Project) -> PassState:
        """Policy, quality gate and runtime build check for one Builder output."""
        state, channel = scope.state, scope.channel
        spec, references = scope.planned()

        state.enter(PipelineStage.POLICY)
        await channel.emit(EventType.COMPILING, "Enforcing package policy...", 55)
        policy = self.policy.enforce(project, scope.stack)

        state.enter(PipelineStage.VALIDATE)
        await channel.emit(EventType.REVIEWING, "Reviewing functionality and visual fidelity...", 65)
        report = await scope.quality.validate(
            policy.project, spec, scope.stack, scope.mode, references, scope.context()
        )
        if report.responsive_warnings:
            responsive_message = f"Responsive checks flagged {len(report.responsive_warnings)} issue(s)"
        else:
            responsive_message = "Responsive checks passed for 375/768/1280"
        await channel.emit(EventType.RESPONSIVE_CHECK, responsive_message, 72)

        state.enter(PipelineStage.RUNTIME_VALIDATE)
        await channel.emit(EventType.VALIDATING, "Running runtime build validation...", 78)
        runtime = await self.runtime_validator.validate(policy.project, scope.stack)
        if runtime.skipped:
            runtime_message = "Runtime build validation skipped"
        elif runtime.passed:
            runtime_message = f"Runtime {runtime.phase.value} passed"
        else:
            runtime_message = f"Runtime {runtime.phase.value} failed"
            report = report.with_runtime_failure(runtime)
        await channel.emit(EventType.VALIDATING, runtime_message, 85)

        logger.info(
            "Validation pass completed",
            attempt=state.retries_used,
            accepted=report.accepted,
            visual_score=report.visual_score,
            runtime_passed=runtime.passed,
        )
        return PassState(
            project=policy.project,
            manifest=policy.manifest,
            runtime_hint=policy.runtime_hint,
            responsive_report=policy.responsive_report,
            report=report,
            runtime=runtime,
            notes=tuple(policy.notes),
            attempt=state.retries_used,
        )

    async def _finalize(self, scope: _RequestScope) -> GenerationResult:
        """Stream files, metadata, completion event and terminator."""
        state, channel = scope.state, scope.channel
        final = scope.current_pass()
        spec, references = scope.planned()

        state.enter(PipelineStage.FINALIZE)
        accepted = final.report.accepted
        notes = [*final.notes, *references.warnings]
        if state.rolled_back:
            notes.append("A repair pass failed the runtime build; returned the last runtime-passing output.")
        elif not accepted:
            notes.append("Quality gate not met after all repair passes; returning best-effort output.")

        metadata = ProjectMetadata(
            name=spec.app_name,
            description=spec.description,
            framework=scope.stack.label,
            created_at=utcnow().isoformat(),
            runtime_hint=final.runtime_hint,
            package_manifest=final.manifest,
            responsive_report=final.responsive_report,
            visual_score=final.report.visual_score,
            accepted=accepted,
            retries_used=state.retries_used,
            total_cost_usd=state.total_cost_usd,
            notes=notes,
        )

        for file in final.project.files:
            await channel.send(StreamChunk.for_file(file))
        await channel.send(StreamChunk.for_metadata(metadata))
        complete_message = "Generation complete!" if accepted else "Generation complete (best effort)."
        await channel.emit(EventType.COMPLETE, complete_message, 100)
        await channel.send(StreamChunk.done())
        state.enter(PipelineStage.DONE)

        logger.info(
            "Generation finished",
            accepted=accepted,
            rolled_back=state.rolled_back,
            retries_used=state.retries_used,
            total_cost_usd=state.total_cost_usd,
            files=len(final.project),
        )
        return GenerationResult(
            request_id=scope.request_id,
            files=list(final.project.files),
            metadata=metadata,
            report=final.report,
            runtime=final.runtime,
            accepted=accepted,
            best_effort=not accepted,
            rolled_back=state.rolled_back,
            retries_used=state.retries_used,
            total_cost_usd=state.total_cost_usd,
            transitions=list(state.transitions),
        )


async def stream_generation(
    request: GenerationRequest,
    settings: Settings,
    *,
    pipeline: GenerationPipeline | None = None,
) -> AsyncIterator[str]:
    """Run a request and yield its NDJSON lines as they are produced.

    Closing the iterator early cancels the pipeline, which kills any in-flight
    build process.
    """
    pipeline = pipeline or GenerationPipeline(settings)
    channel = EventChannel(settings.stream)
    task = asyncio.create_task(pipeline.run(request, channel))
    try:
        async for line in channel.stream():
            yield line
    finally:
        if not task.done():
            channel.detach()
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

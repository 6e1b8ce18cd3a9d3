"""ChartAnalysisOrchestrator - request surface of every analysis pipeline.

This orchestrator:
1. Builds the stage graph for the requested topology
2. Runs it through the composer (parallel layers, deadline, retries)
3. Finalizes the run through the pipeline's degradation policy
4. Optionally annotates the chart as best-effort post-processing

``analyze`` and ``answer_question`` never raise for pipeline failures;
every failure is encoded in the returned result. Cancellation of the
calling task propagates.
"""

import asyncio
import dataclasses
import logging
import time
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

from chartinsight.agent.inference import ProviderInference
from chartinsight.agent.pipeline import (
    PipelineComposer,
    PipelineConfigurationError,
    StageEvent,
    StageExecutor,
)
from chartinsight.agent.pipeline.executor import InvokeFn
from chartinsight.agent.pipelines import (
    PipelineDefinition,
    build_annotation_stage,
    build_pipeline,
    build_question,
)
from chartinsight.agent.providers.factory import get_default_provider, get_provider
from chartinsight.agent.schemas.stages import AnnotationInput
from chartinsight.agent.schemas.streaming import StreamEvent
from chartinsight.config import Settings, get_settings
from chartinsight.models.analysis import AnalysisResult, ChartAnswerResult
from chartinsight.models.request import AnalysisRequest, PipelineKind, QuestionRequest

logger = logging.getLogger(__name__)

Observer = Callable[[StageEvent], None]
ResultSink = Callable[[AnalysisResult], Awaitable[Optional[str]]]


def request_context(request: AnalysisRequest) -> Dict[str, Any]:
    """Values every stage input is built from."""
    return {
        "images": request.image_refs,
        "trading_style": request.trading_style_label,
        "question": request.question,
        "previous_analysis": request.previous_analysis,
    }


class ChartAnalysisOrchestrator:
    """Runs analysis and question pipelines against an inference collaborator."""

    def __init__(
        self,
        invoke: InvokeFn,
        settings: Optional[Settings] = None,
        annotator: Optional[InvokeFn] = None,
    ):
        """Initialize the orchestrator.

        Args:
            invoke: Inference collaborator ``invoke(spec, stage_input)``
            settings: Application settings (defaults to the cached settings)
            annotator: Local invoker for the annotation stage; None disables it
        """
        self.settings = settings or get_settings()
        self.executor = StageExecutor(invoke)
        self.composer = PipelineComposer(
            self.executor,
            deadline_seconds=self.settings.request_deadline_seconds,
        )
        self.annotator = annotator

    def resolve_pipeline(self, request: AnalysisRequest, kind: Optional[PipelineKind] = None) -> PipelineKind:
        """Explicit choice, else multi-timeframe for timeframe images, else the configured default."""
        if kind is not None:
            return kind
        if request.timeframe_images:
            return PipelineKind.MULTI_TIMEFRAME
        try:
            return PipelineKind(self.settings.default_pipeline)
        except ValueError:
            logger.warning(f"Unknown DEFAULT_PIPELINE '{self.settings.default_pipeline}', using chained")
            return PipelineKind.CHAINED

    def definition_for(self, request: AnalysisRequest, kind: PipelineKind) -> PipelineDefinition:
        return build_pipeline(kind, self.settings, image_count=len(request.image_refs))

    async def analyze(
        self,
        request: AnalysisRequest,
        kind: Optional[PipelineKind] = None,
        on_event: Optional[Observer] = None,
    ) -> AnalysisResult:
        """Run one analysis pipeline.

        Args:
            request: Validated analysis request
            kind: Pipeline topology; resolved from the request when omitted
            on_event: Optional stage progress observer

        Returns:
            Exactly one AnalysisResult, degraded on failure
        """
        started = time.monotonic()
        kind = self.resolve_pipeline(request, kind)
        name = kind.value

        try:
            definition = self.definition_for(request, kind)
        except (PipelineConfigurationError, ValueError) as e:
            logger.error(f"Cannot build pipeline '{name}': {e}")
            return AnalysisResult.degraded_result(str(e), pipeline=name)

        try:
            run = await self.composer.run(definition.graph, request_context(request), on_event=on_event)
            result = definition.finalize(run)
        except asyncio.CancelledError:
            logger.info(f"Pipeline '{name}' cancelled by caller")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in pipeline '{name}'")
            return AnalysisResult.degraded_result(f"{type(e).__name__}: {e}", pipeline=name)

        if not result.degraded and self.annotator is not None and self.settings.annotation_enabled:
            remaining = self.settings.request_deadline_seconds - (time.monotonic() - started)
            result = await self._annotate(definition, request, result, remaining)

        return result

    async def _annotate(
        self,
        definition: PipelineDefinition,
        request: AnalysisRequest,
        result: AnalysisResult,
        remaining_seconds: float,
    ) -> AnalysisResult:
        """Best-effort annotation bounded by what is left of the request deadline."""
        if remaining_seconds <= 0:
            logger.warning(f"Skipping annotation: request deadline of {self.settings.request_deadline_seconds:g}s used up")
            return result
        spec = build_annotation_stage(self.settings)
        if remaining_seconds < spec.timeout_seconds:
            spec = dataclasses.replace(spec, timeout_seconds=remaining_seconds)
        stage_input = AnnotationInput(
            images=[request.primary_image],
            trading_style=request.trading_style_label,
            analysis=result,
        )
        stage_result = await self.executor.execute(spec, stage_input, invoke=self.annotator)
        return definition.policy.enrich(result, "annotated_image", spec.name, stage_result)

    async def analyze_stream(
        self,
        request: AnalysisRequest,
        kind: Optional[PipelineKind] = None,
        on_result: Optional[ResultSink] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Run one analysis pipeline, yielding progress events.

        Args:
            request: Validated analysis request
            kind: Pipeline topology
            on_result: Called with the final result; returns a record id

        Yields:
            StreamEvent objects: pipeline_started, stage_progress..., final_result
        """
        kind = self.resolve_pipeline(request, kind)
        queue: asyncio.Queue = asyncio.Queue()

        try:
            stages = [spec.name for spec in self.definition_for(request, kind).graph.stages]
        except (PipelineConfigurationError, ValueError) as e:
            stages = []
            logger.error(f"Cannot build pipeline '{kind.value}': {e}")
        yield StreamEvent.pipeline_started(kind.value, stages)

        task = asyncio.create_task(self.analyze(request, kind, on_event=queue.put_nowait))
        try:
            while not task.done() or not queue.empty():
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield StreamEvent.stage_progress(getter.result())
                else:
                    getter.cancel()

            result = task.result()
            record_id = await on_result(result) if on_result else None
            yield StreamEvent.final_result(result.model_dump(mode="json"), kind.value, record_id)
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    async def answer_question(self, request: QuestionRequest) -> ChartAnswerResult:
        """Answer a follow-up question about a chart; never raises for pipeline failures."""
        definition = build_question(self.settings)
        context = {
            "images": [request.image],
            "trading_style": request.trading_style.value if request.trading_style else "Not specified",
            "question": request.question,
            "previous_analysis": request.previous_analysis,
        }
        try:
            run = await self.composer.run(definition.graph, context)
            return definition.finalize(run)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected error answering chart question")
            return definition.policy.fallback(f"{type(e).__name__}: {e}")


# Singleton instance
_orchestrator: Optional[ChartAnalysisOrchestrator] = None


def get_orchestrator() -> ChartAnalysisOrchestrator:
    """Get the shared orchestrator backed by the default provider."""
    global _orchestrator
    if _orchestrator is None:
        from chartinsight.tools.chart_annotator import ChartAnnotator

        inference = ProviderInference(lambda: get_provider(get_default_provider()))
        _orchestrator = ChartAnalysisOrchestrator(inference, annotator=ChartAnnotator())
    return _orchestrator

"""Pipeline definitions: one stage graph per analysis topology.

Stage specs are built from settings once per request; each definition
pairs its graph with the merge strategy and degradation policy that turn
a run into the final result.
"""

from dataclasses import dataclass
from functools import partial
from typing import Callable, List

from chartinsight.agent.pipeline import MergeMode, PipelineGraph, PipelineRun, StageSpec
from chartinsight.agent.pipeline.degradation import DegradationPolicy
from chartinsight.agent.pipeline.strategies import (
    answer_passthrough,
    debate_arbitration,
    hierarchical_timeframe_merge,
    passthrough_chained,
    passthrough_single,
)
from chartinsight.agent.prompts import (
    ANALYST_SYSTEM_PROMPT,
    ARBITRATION_PROMPT,
    ARBITRATION_SYSTEM_PROMPT,
    FEATURE_EXTRACTOR_PROMPT,
    MARKET_STRUCTURE_PROMPT,
    MARKET_STRUCTURE_SYSTEM_PROMPT,
    PATTERN_RECOGNIZER_PROMPT,
    PATTERN_RECOGNIZER_SYSTEM_PROMPT,
    PERSONA_PROMPT,
    PERSONA_SYSTEM_PROMPT,
    QUESTION_PROMPT,
    RISK_MANAGER_PROMPT,
    RISK_MANAGER_SYSTEM_PROMPT,
    SINGLE_PROMPT_ANALYSIS_PROMPT,
    SYNTHESIZER_PROMPT,
    TIMEFRAME_PROMPT,
    TIMEFRAME_SYNTHESIS_PROMPT,
    TIMEFRAME_SYSTEM_PROMPT,
)
from chartinsight.agent.schemas.stages import (
    AnnotationInput,
    AnnotationOutput,
    ArbitrationInput,
    ArbitrationOutput,
    ChartAnswerOutput,
    ChartInput,
    FeatureOutput,
    FullAnalysisOutput,
    PatternInput,
    PatternReport,
    PersonaInput,
    PersonaProposal,
    QuestionInput,
    RiskReport,
    StructureReport,
    SynthesisInput,
    TimeframeInput,
    TimeframeReport,
    TimeframeSynthesisInput,
    TimeframeSynthesisOutput,
    TradePlanOutput,
)
from chartinsight.config import Settings
from chartinsight.models.analysis import AnalysisResult, ChartAnswerResult
from chartinsight.models.request import MAX_TIMEFRAME_IMAGES, PipelineKind


QUESTION_PIPELINE = "chart_question"

ANNOTATION_STAGE = "annotation"

TIMEFRAME_OUTPUT_KEY = "timeframes"

_TIMEFRAME_LABELS = {
    1: ["Highest timeframe"],
    2: ["Higher timeframe", "Lower timeframe"],
    3: ["Highest timeframe", "Middle timeframe", "Lowest timeframe"],
}


@dataclass(frozen=True)
class PipelineDefinition:
    """A graph plus how its run becomes a result."""

    name: str
    graph: PipelineGraph
    policy: DegradationPolicy
    merge: Callable[[PipelineRun], object]

    def finalize(self, run: PipelineRun):
        return self.policy.finalize(run, self.merge)


def _analysis_fallback(pipeline: str) -> Callable[[str], AnalysisResult]:
    return partial(AnalysisResult.degraded_result, pipeline=pipeline)


def _answer_fallback(message: str) -> ChartAnswerResult:
    return ChartAnswerResult(
        answer=(
            f"An unexpected error occurred while answering your question: {message}. "
            "This may be a temporary issue with the AI service. Please try again later."
        ),
        degraded=True,
    )


def _stage(settings: Settings, synthesis: bool = False, **kwargs) -> StageSpec:
    kwargs.setdefault(
        "timeout_seconds",
        settings.synthesis_timeout_seconds if synthesis else settings.stage_timeout_seconds,
    )
    kwargs.setdefault("retries", min(max(settings.transport_retries, 0), 1))
    return StageSpec(**kwargs)


def build_single_prompt(settings: Settings) -> PipelineDefinition:
    name = PipelineKind.SINGLE_PROMPT.value
    graph = PipelineGraph(name, [
        _stage(
            settings,
            synthesis=True,
            name="analysis",
            prompt=SINGLE_PROMPT_ANALYSIS_PROMPT,
            system_prompt=ANALYST_SYSTEM_PROMPT,
            input_model=ChartInput,
            output_model=FullAnalysisOutput,
            max_tokens=6000,
        ),
    ])
    policy = DegradationPolicy(name, ("analysis",), _analysis_fallback(name))
    return PipelineDefinition(name, graph, policy, passthrough_single)


def build_chained(settings: Settings) -> PipelineDefinition:
    """Features and patterns in parallel, then synthesis.

    The pattern recognizer is an optional input: without it the synthesis
    still runs and the pattern list stays empty.
    """
    name = PipelineKind.CHAINED.value
    graph = PipelineGraph(name, [
        _stage(
            settings,
            name="features",
            prompt=FEATURE_EXTRACTOR_PROMPT,
            system_prompt=ANALYST_SYSTEM_PROMPT,
            input_model=ChartInput,
            output_model=FeatureOutput,
        ),
        _stage(
            settings,
            name="patterns",
            prompt=PATTERN_RECOGNIZER_PROMPT,
            system_prompt=PATTERN_RECOGNIZER_SYSTEM_PROMPT,
            input_model=PatternInput,
            output_model=PatternReport,
            max_tokens=6000,
        ),
        _stage(
            settings,
            synthesis=True,
            name="synthesis",
            prompt=SYNTHESIZER_PROMPT,
            system_prompt=ANALYST_SYSTEM_PROMPT,
            input_model=SynthesisInput,
            output_model=TradePlanOutput,
            depends_on=("features",),
            optional_inputs=("patterns",),
        ),
    ])
    policy = DegradationPolicy(name, ("features", "synthesis"), _analysis_fallback(name))
    return PipelineDefinition(name, graph, policy, passthrough_chained)


def build_debate(settings: Settings) -> PipelineDefinition:
    """Two personas and two neutral desks in parallel, then arbitration."""
    name = PipelineKind.DEBATE.value
    adversarial = settings.debate_adversarial_personas
    graph = PipelineGraph(name, [
        _stage(
            settings,
            name="bullish",
            prompt=PERSONA_PROMPT,
            system_prompt=PERSONA_SYSTEM_PROMPT,
            input_model=PersonaInput,
            output_model=PersonaProposal,
            params={"stance": "bullish", "adversarial": adversarial},
        ),
        _stage(
            settings,
            name="bearish",
            prompt=PERSONA_PROMPT,
            system_prompt=PERSONA_SYSTEM_PROMPT,
            input_model=PersonaInput,
            output_model=PersonaProposal,
            params={"stance": "bearish", "adversarial": adversarial},
        ),
        _stage(
            settings,
            name="market_structure",
            prompt=MARKET_STRUCTURE_PROMPT,
            system_prompt=MARKET_STRUCTURE_SYSTEM_PROMPT,
            input_model=ChartInput,
            output_model=StructureReport,
        ),
        _stage(
            settings,
            name="risk",
            prompt=RISK_MANAGER_PROMPT,
            system_prompt=RISK_MANAGER_SYSTEM_PROMPT,
            input_model=ChartInput,
            output_model=RiskReport,
        ),
        _stage(
            settings,
            synthesis=True,
            name="arbitration",
            prompt=ARBITRATION_PROMPT,
            system_prompt=ARBITRATION_SYSTEM_PROMPT,
            input_model=ArbitrationInput,
            output_model=ArbitrationOutput,
            depends_on=("bullish", "bearish", "market_structure", "risk"),
        ),
    ])
    mandatory = tuple(spec.name for spec in graph.stages)
    policy = DegradationPolicy(name, mandatory, _analysis_fallback(name))
    return PipelineDefinition(name, graph, policy, debate_arbitration)


def timeframe_stage_names(image_count: int) -> List[str]:
    return [f"timeframe_{i + 1}" for i in range(image_count)]


def build_multi_timeframe(settings: Settings, image_count: int) -> PipelineDefinition:
    """One stage per timeframe (highest first), then the hierarchical synthesis.

    Only the highest timeframe is required; lower timeframe reads that fail
    are left out of the synthesis input.
    """
    if not 1 <= image_count <= MAX_TIMEFRAME_IMAGES:
        raise ValueError(f"multi-timeframe analysis takes 1-{MAX_TIMEFRAME_IMAGES} images, got {image_count}")

    name = PipelineKind.MULTI_TIMEFRAME.value
    names = timeframe_stage_names(image_count)
    stages = [
        _stage(
            settings,
            name=stage_name,
            prompt=TIMEFRAME_PROMPT,
            system_prompt=TIMEFRAME_SYSTEM_PROMPT,
            input_model=TimeframeInput,
            output_model=TimeframeReport,
            output_key=TIMEFRAME_OUTPUT_KEY,
            merge_mode=MergeMode.APPEND,
            params={"image_index": index, "timeframe_label": label},
        )
        for index, (stage_name, label) in enumerate(zip(names, _TIMEFRAME_LABELS[image_count]))
    ]
    stages.append(_stage(
        settings,
        synthesis=True,
        name="synthesis",
        prompt=TIMEFRAME_SYNTHESIS_PROMPT,
        system_prompt=ANALYST_SYSTEM_PROMPT,
        input_model=TimeframeSynthesisInput,
        output_model=TimeframeSynthesisOutput,
        depends_on=(names[0],),
        optional_inputs=tuple(names[1:]),
        max_tokens=6000,
    ))
    graph = PipelineGraph(name, stages)
    policy = DegradationPolicy(name, (names[0], "synthesis"), _analysis_fallback(name))
    merge = partial(hierarchical_timeframe_merge, timeframe_stages=names)
    return PipelineDefinition(name, graph, policy, merge)


def build_question(settings: Settings) -> PipelineDefinition:
    graph = PipelineGraph(QUESTION_PIPELINE, [
        _stage(
            settings,
            name="answer",
            prompt=QUESTION_PROMPT,
            system_prompt=ANALYST_SYSTEM_PROMPT,
            input_model=QuestionInput,
            output_model=ChartAnswerOutput,
            model_type="fast",
            max_tokens=2000,
        ),
    ])
    policy = DegradationPolicy(QUESTION_PIPELINE, ("answer",), _answer_fallback)
    return PipelineDefinition(QUESTION_PIPELINE, graph, policy, answer_passthrough)


def build_annotation_stage(settings: Settings) -> StageSpec:
    """Best-effort post-processing stage run by a local annotator."""
    return StageSpec(
        name=ANNOTATION_STAGE,
        prompt="",
        input_model=AnnotationInput,
        output_model=AnnotationOutput,
        timeout_seconds=settings.stage_timeout_seconds,
        retries=0,
    )


def build_pipeline(kind: PipelineKind, settings: Settings, image_count: int = 1) -> PipelineDefinition:
    """Build the definition for one analysis topology."""
    if kind == PipelineKind.SINGLE_PROMPT:
        return build_single_prompt(settings)
    if kind == PipelineKind.CHAINED:
        return build_chained(settings)
    if kind == PipelineKind.DEBATE:
        return build_debate(settings)
    if kind == PipelineKind.MULTI_TIMEFRAME:
        return build_multi_timeframe(settings, image_count)
    raise ValueError(f"Unknown pipeline: {kind}")

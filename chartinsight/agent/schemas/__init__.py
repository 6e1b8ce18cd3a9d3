"""Pydantic schemas for stage contracts and streaming events.

This module contains:
- Stage inputs: records the composer assembles for each stage
- Stage outputs: what each inference call must return
- StreamEvent: SSE event models for the streaming endpoint
"""

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
    TimeframeEntry,
    TimeframeInput,
    TimeframeReport,
    TimeframeSynthesisInput,
    TimeframeSynthesisOutput,
    TradePlanOutput,
)
from chartinsight.agent.schemas.streaming import StreamEvent, StreamEventType

__all__ = [
    # Inputs
    "ChartInput",
    "PatternInput",
    "SynthesisInput",
    "PersonaInput",
    "ArbitrationInput",
    "TimeframeInput",
    "TimeframeEntry",
    "TimeframeSynthesisInput",
    "QuestionInput",
    "AnnotationInput",
    # Outputs
    "FeatureOutput",
    "PatternReport",
    "TradePlanOutput",
    "FullAnalysisOutput",
    "PersonaProposal",
    "StructureReport",
    "RiskReport",
    "ArbitrationOutput",
    "TimeframeReport",
    "TimeframeSynthesisOutput",
    "ChartAnswerOutput",
    "AnnotationOutput",
    # Streaming
    "StreamEvent",
    "StreamEventType",
]

"""Pydantic models for data validation and serialization."""

from .analysis import (
    AnalysisResult,
    ChartAnswerResult,
    Indicator,
    KeyLevel,
    KeyLevels,
    Pattern,
    PatternPsychology,
)
from .request import (
    AnalysisRequest,
    AnalyzeChartRequest,
    FeedbackRequest,
    PipelineKind,
    QuestionRequest,
    TradingStyle,
)

__all__ = [
    "AnalysisResult",
    "ChartAnswerResult",
    "Indicator",
    "KeyLevel",
    "KeyLevels",
    "Pattern",
    "PatternPsychology",
    "AnalysisRequest",
    "AnalyzeChartRequest",
    "FeedbackRequest",
    "PipelineKind",
    "QuestionRequest",
    "TradingStyle",
]

"""Stage input and output contracts.

Inputs are frozen records assembled by the composer from the request
context, static stage params and upstream outputs. Outputs are what the
inference service must return; they are validated strictly before any
downstream stage sees them.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chartinsight.models.analysis import (
    AnalysisResult,
    Indicator,
    KeyLevels,
    NOT_AVAILABLE,
    Pattern,
)


TimeframeTrendLiteral = Literal["Uptrend", "Downtrend", "Sideways"]
SetupDirectionLiteral = Literal["Long", "Short", "None"]
VolatilityLiteral = Literal["Low", "Normal", "High"]
DecisionLiteral = Literal["adopt_bullish", "adopt_bearish", "no_trade", "synthesized"]
StanceLiteral = Literal["bullish", "bearish"]


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class ChartInput(BaseModel):
    """Request context every stage receives."""

    model_config = ConfigDict(frozen=True)

    images: List[str] = Field(min_length=1, description="Chart images, highest timeframe first.")
    trading_style: str = Field(default="Not specified")
    question: Optional[str] = None
    previous_analysis: Optional[AnalysisResult] = None

    def attachments(self) -> List[str]:
        """Images sent with the inference call."""
        return [self.images[0]]


class PatternInput(ChartInput):
    timeframe: Optional[str] = Field(default=None, description="Chart timeframe, e.g. '4h'.")


class SynthesisInput(ChartInput):
    """Chained synthesis: required features, optional pattern report."""

    features: "FeatureOutput"
    patterns: Optional["PatternReport"] = None


class PersonaInput(ChartInput):
    """Debate persona: one fixed viewpoint."""

    stance: StanceLiteral
    adversarial: bool = True


class ArbitrationInput(ChartInput):
    bullish: "PersonaProposal"
    bearish: "PersonaProposal"
    market_structure: "StructureReport"
    risk: "RiskReport"


class TimeframeInput(ChartInput):
    """One timeframe of a multi-timeframe request."""

    image_index: int = Field(ge=0, le=2)
    timeframe_label: str

    def attachments(self) -> List[str]:
        return [self.images[self.image_index]]


class TimeframeEntry(BaseModel):
    """One timeframe report tagged with the chart it was read from."""

    model_config = ConfigDict(frozen=True)

    stage: str
    image_index: int = Field(ge=0, le=2)
    timeframe_label: str
    output: "TimeframeReport"


class TimeframeSynthesisInput(ChartInput):
    """Timeframe reports that succeeded, highest timeframe first."""

    timeframes: List[TimeframeEntry] = Field(min_length=1)

    def attachments(self) -> List[str]:
        """Only the charts whose report is present, in report order."""
        return [self.images[entry.image_index] for entry in self.timeframes]


class QuestionInput(ChartInput):
    question: str = Field(min_length=1)


class AnnotationInput(ChartInput):
    analysis: AnalysisResult


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class FeatureOutput(BaseModel):
    """Feature extraction: trend, structure, levels and indicators."""

    trend: str = Field(min_length=1)
    structure: str = Field(min_length=1)
    key_levels: KeyLevels
    indicators: List[Indicator]


class PatternReport(BaseModel):
    """Pattern recognizer output."""

    patterns: List[Pattern]
    pattern_summary: str = ""
    market_context: str = ""
    trading_opportunities: List[str] = Field(default_factory=list)


class TradePlanOutput(BaseModel):
    """Synthesis stage output of the chained pipeline."""

    entry: str
    stop_loss: str
    take_profit: List[str]
    risk_reward: str
    recommendation: str = Field(min_length=1)
    reasoning: str = Field(min_length=1)
    confidence: Optional[int] = Field(default=None, ge=1, le=10)


class FullAnalysisOutput(FeatureOutput, TradePlanOutput):
    """Single-prompt pipeline: the complete report in one call."""

    patterns: List[Pattern]


class PersonaProposal(BaseModel):
    """Trade proposal from a persona stage."""

    viable: bool = Field(description="False when no plausible setup exists for this stance.")
    entry: str
    stop_loss: str
    take_profit: str
    justification: str = Field(min_length=1)
    confidence: int = Field(ge=1, le=10)


class StructureReport(BaseModel):
    """Neutral market-structure desk report."""

    trend: str = Field(min_length=1)
    structure: str = Field(min_length=1)
    key_levels: KeyLevels
    structural_points: List[str] = Field(default_factory=list)


class RiskReport(BaseModel):
    """Neutral risk desk report: top risks for the trading style."""

    volatility: VolatilityLiteral
    risks: List[str] = Field(min_length=1, max_length=5)
    fakeout_probability: Optional[float] = Field(default=None, ge=0, le=100)


class ArbitrationOutput(BaseModel):
    """Head analyst verdict over both proposals."""

    decision: DecisionLiteral
    bullish_assessment: str = Field(min_length=1)
    bearish_assessment: str = Field(min_length=1)
    entry: str
    stop_loss: str
    take_profit: List[str]
    risk_reward: str
    recommendation: str = Field(min_length=1)
    reasoning: str = Field(min_length=1)
    confidence: int = Field(ge=1, le=10)

    @field_validator("recommendation")
    @classmethod
    def validate_recommendation(cls, v: str) -> str:
        if v.strip().upper() == NOT_AVAILABLE:
            raise ValueError("recommendation must be a decision, not N/A")
        return v


class TimeframeReport(BaseModel):
    """Per-timeframe read."""

    trend: TimeframeTrendLiteral
    structure: str = ""
    key_levels: List[float] = Field(default_factory=list)
    pattern: str = ""


class TimeframeSynthesisOutput(FeatureOutput, TradePlanOutput):
    """Multi-timeframe synthesis: unified plan plus the setup direction."""

    patterns: List[Pattern] = Field(default_factory=list)
    setup_direction: SetupDirectionLiteral
    counter_trend: bool = Field(
        default=False,
        description="True when the synthesis deliberately trades against the highest timeframe."
    )
    confidence: int = Field(ge=1, le=10)


class ChartAnswerOutput(BaseModel):
    answer: str = Field(min_length=1)
    confidence: int = Field(ge=1, le=10)
    reasoning: str = ""
    watch_points: List[str] = Field(default_factory=list)


class AnnotationOutput(BaseModel):
    annotated_image: str = Field(pattern=r"^data:image/[a-z+]+;base64,")


SynthesisInput.model_rebuild()
ArbitrationInput.model_rebuild()
TimeframeEntry.model_rebuild()
TimeframeSynthesisInput.model_rebuild()

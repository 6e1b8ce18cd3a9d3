"""Analysis result models returned by every pipeline variant."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


PatternStatusLiteral = Literal["Forming", "Active", "Confirmed", "Invalidated"]
LevelStrengthLiteral = Literal["Strong", "Moderate", "Weak"]
PatternTypeLiteral = Literal["Continuation", "Reversal", "Neutral"]

ERROR_TREND = "Error"
NOT_AVAILABLE = "N/A"


class KeyLevel(BaseModel):
    """A support or resistance zone graded by strength."""

    zone: str = Field(
        min_length=1,
        description="Price range of the zone, e.g. '45000-45500'."
    )
    strength: LevelStrengthLiteral = Field(
        description="Strength based on freshness, number of touches and reaction size."
    )


class KeyLevels(BaseModel):
    """Support and resistance zones."""

    support: List[KeyLevel] = Field(default_factory=list)
    resistance: List[KeyLevel] = Field(default_factory=list)


class Indicator(BaseModel):
    """Signal read from an indicator visible on the chart."""

    name: str = Field(min_length=1, description="Indicator name, e.g. 'RSI', 'MACD'.")
    signal: str = Field(description="Interpretation, e.g. 'Bullish Divergence'.")


class PatternPsychology(BaseModel):
    """Crowd positioning behind a pattern."""

    retail_sentiment: str = Field(default="", description="What retail traders likely see.")
    smart_money: str = Field(default="", description="Institutional positioning evidence.")
    liquidity_zones: List[str] = Field(
        default_factory=list,
        description="Where stops and targets cluster."
    )
    false_signal_probability: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Likelihood of a fakeout/shakeout (0-100)."
    )


class Pattern(BaseModel):
    """One identified chart formation.

    ``Invalidated`` patterns are kept in results: a failed formation often
    signals strength in the opposite direction.
    """

    name: str = Field(min_length=1, description="Pattern name, e.g. 'Bull Flag'.")
    probability: float = Field(
        ge=0,
        le=100,
        description="Estimated success probability as a percentage (0-100)."
    )
    status: PatternStatusLiteral = Field(description="Lifecycle status of the pattern.")

    # Richer fields filled by the dedicated pattern recognizer
    pattern_type: Optional[PatternTypeLiteral] = None
    formation_quality: Optional[int] = Field(
        default=None, ge=1, le=10, description="Textbook accuracy rating (1-10)."
    )
    volume_confirmation: Optional[int] = Field(
        default=None, ge=1, le=10, description="Volume alignment rating (1-10)."
    )
    stage: Optional[str] = Field(default=None, description="Pattern evolution stage.")
    psychology: Optional[PatternPsychology] = None
    invalidation_level: Optional[float] = None
    target_zones: List[float] = Field(default_factory=list)
    time_horizon: Optional[str] = None


class AnalysisResult(BaseModel):
    """Externally visible output of every analysis pipeline.

    A degraded result has exactly the same shape: sentinel values in every
    field plus an explanatory message, so consumers never need a separate
    error type.
    """

    trend: str = Field(description="Overall trend, e.g. 'Bullish', 'Bearish', 'Sideways'.")
    structure: str = Field(description="Market structure, e.g. 'Higher Highs, Higher Lows'.")
    key_levels: KeyLevels = Field(default_factory=KeyLevels)
    indicators: List[Indicator] = Field(default_factory=list)
    patterns: List[Pattern] = Field(default_factory=list)

    # Trade plan
    entry: str = Field(default=NOT_AVAILABLE, description="Entry point or zone.")
    stop_loss: str = Field(default=NOT_AVAILABLE, description="Stop-loss level.")
    take_profit: List[str] = Field(default_factory=list, description="Take-profit levels (TP1, TP2, ...).")
    risk_reward: str = Field(default=NOT_AVAILABLE, description="Risk/reward ratio to TP1, e.g. '1:3'.")

    recommendation: str = Field(description="Final concise recommendation.")
    reasoning: str = Field(description="Step-by-step Markdown explanation of the conclusion.")

    # Pipeline-specific extras
    confidence: Optional[int] = Field(default=None, ge=1, le=10)
    counter_trend: Optional[bool] = Field(
        default=None,
        description="Set by the multi-timeframe merge when the setup fights the higher timeframe."
    )
    decision: Optional[str] = Field(
        default=None,
        description="Arbitration verdict for the collaborative pipeline."
    )

    # Optional enrichment
    annotated_image: Optional[str] = Field(
        default=None,
        description="Data URI of the chart with the analysis drawn on it."
    )

    pipeline: str = Field(default="", description="Pipeline variant that produced this result.")
    degraded: bool = Field(default=False)
    error: Optional[str] = Field(default=None, description="Underlying failure reason when degraded.")

    @property
    def is_error(self) -> bool:
        return self.degraded or self.trend == ERROR_TREND

    @classmethod
    def degraded_result(cls, message: str, pipeline: str = "") -> "AnalysisResult":
        """Build the sentinel result returned when a mandatory stage fails."""
        return cls(
            trend=ERROR_TREND,
            structure="An error occurred during analysis.",
            key_levels=KeyLevels(),
            indicators=[],
            patterns=[],
            entry=NOT_AVAILABLE,
            stop_loss=NOT_AVAILABLE,
            take_profit=[],
            risk_reward=NOT_AVAILABLE,
            recommendation=f"Analysis failed: {message}. Please try again.",
            reasoning=f"The analysis could not be completed due to an internal error: {message}",
            pipeline=pipeline,
            degraded=True,
            error=message,
        )


class ChartAnswerResult(BaseModel):
    """Answer to a follow-up question about a chart."""

    answer: str
    confidence: Optional[int] = Field(default=None, ge=1, le=10)
    watch_points: List[str] = Field(default_factory=list)
    degraded: bool = False

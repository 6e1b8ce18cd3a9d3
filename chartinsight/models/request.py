"""Request models for the analysis pipelines and API endpoints."""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from chartinsight.models.analysis import AnalysisResult


MAX_TIMEFRAME_IMAGES = 3


class TradingStyle(str, Enum):
    """Trading style the analysis is tailored to."""
    SCALPER = "Scalper"
    DAY_TRADER = "Day Trader"
    SWING_TRADER = "Swing Trader"
    POSITION_TRADER = "Position Trader"


class PipelineKind(str, Enum):
    """Available analysis pipeline topologies."""
    SINGLE_PROMPT = "single_prompt"
    CHAINED = "chained"
    DEBATE = "debate"
    MULTI_TIMEFRAME = "multi_timeframe"


def _normalize_style(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalpha())


_STYLE_ALIASES = {_normalize_style(style.value): style for style in TradingStyle}


def parse_trading_style(value):
    """Accept 'DayTrader', 'day_trader' and 'Day Trader' alike."""
    if isinstance(value, str):
        style = _STYLE_ALIASES.get(_normalize_style(value))
        if style is None:
            raise ValueError(
                f"Unknown trading style '{value}'. "
                f"Expected one of: {', '.join(s.value for s in TradingStyle)}"
            )
        return style
    return value


class AnalysisRequest(BaseModel):
    """Immutable analysis request shared by every pipeline.

    Attributes:
        image: Chart image as a data URI or http(s) URL
        trading_style: Optional trading style the analysis is tailored to
        question: Optional free-text question to address
        previous_analysis: Prior result, for context continuity
        timeframe_images: 1-3 images ordered highest to lowest timeframe
    """

    model_config = ConfigDict(frozen=True)

    image: Optional[str] = Field(
        default=None,
        description="Chart image as a data URI ('data:<mimetype>;base64,<data>') or URL",
        min_length=1,
    )
    trading_style: Optional[TradingStyle] = Field(
        default=None,
        description="Scalper, Day Trader, Swing Trader or Position Trader",
    )
    question: Optional[str] = Field(
        default=None,
        description="Specific question to address in the analysis",
        max_length=2000,
    )
    previous_analysis: Optional[AnalysisResult] = Field(
        default=None,
        description="Previous analysis of the same chart",
    )
    timeframe_images: Optional[List[str]] = Field(
        default=None,
        description="Multi-timeframe mode: 1-3 images, highest timeframe first",
    )

    @field_validator("trading_style", mode="before")
    @classmethod
    def validate_trading_style(cls, v):
        return parse_trading_style(v)

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("timeframe_images")
    @classmethod
    def validate_timeframe_images(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        if not 1 <= len(v) <= MAX_TIMEFRAME_IMAGES:
            raise ValueError(
                f"timeframe_images must contain 1-{MAX_TIMEFRAME_IMAGES} images, got {len(v)}"
            )
        if any(not ref for ref in v):
            raise ValueError("timeframe_images must not contain empty references")
        return v

    @model_validator(mode="after")
    def validate_has_image(self) -> "AnalysisRequest":
        if not self.image and not self.timeframe_images:
            raise ValueError("An image or at least one timeframe image is required")
        return self

    @property
    def image_refs(self) -> List[str]:
        """Images in timeframe order; a single-image request yields one entry."""
        if self.timeframe_images:
            return list(self.timeframe_images)
        return [self.image]

    @property
    def primary_image(self) -> str:
        return self.image or self.timeframe_images[0]

    @property
    def trading_style_label(self) -> str:
        return self.trading_style.value if self.trading_style else "Not specified"


class AnalyzeChartRequest(AnalysisRequest):
    """API body for the analysis endpoints.

    Adds the caller identity used for history storage and the pipeline
    selection; neither reaches the pipelines themselves.
    """

    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the stored analysis record; nothing is stored when omitted",
        max_length=128,
    )
    pipeline: Optional[PipelineKind] = Field(
        default=None,
        description="Pipeline topology; defaults to the configured pipeline",
    )

    def to_analysis_request(self) -> AnalysisRequest:
        return AnalysisRequest(
            image=self.image,
            trading_style=self.trading_style,
            question=self.question,
            previous_analysis=self.previous_analysis,
            timeframe_images=self.timeframe_images,
        )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "image": "data:image/png;base64,iVBORw0KGgo...",
                    "trading_style": "Swing Trader",
                    "user_id": "user-123",
                },
                {
                    "timeframe_images": [
                        "https://example.com/btc-1d.png",
                        "https://example.com/btc-4h.png",
                        "https://example.com/btc-15m.png",
                    ],
                    "trading_style": "Day Trader",
                    "pipeline": "multi_timeframe",
                },
            ]
        },
    }


class QuestionRequest(BaseModel):
    """Follow-up question about a chart."""

    image: str = Field(..., min_length=1, description="Chart image as a data URI or URL")
    question: str = Field(..., min_length=1, max_length=2000)
    trading_style: Optional[TradingStyle] = None
    previous_analysis: Optional[AnalysisResult] = None
    record_id: Optional[str] = Field(
        default=None,
        description="Stored analysis to append the question and answer to",
    )

    @field_validator("trading_style", mode="before")
    @classmethod
    def validate_trading_style(cls, v):
        return parse_trading_style(v)

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("question must not be blank")
        return v


class FeedbackRequest(BaseModel):
    """Helpful/unhelpful rating for a stored analysis."""

    feedback: Literal["helpful", "unhelpful"]

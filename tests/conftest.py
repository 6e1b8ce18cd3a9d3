"""Pytest configuration and shared fixtures."""

import asyncio
import base64
import copy
from io import BytesIO
from typing import Any, Dict, List, Optional

import pytest

from chartinsight.agent.orchestrator import ChartAnalysisOrchestrator
from chartinsight.agent.schemas.stages import (
    ArbitrationOutput,
    ChartAnswerOutput,
    FeatureOutput,
    FullAnalysisOutput,
    PatternReport,
    PersonaProposal,
    RiskReport,
    StructureReport,
    TimeframeReport,
    TimeframeSynthesisOutput,
    TradePlanOutput,
)
from chartinsight.config import Settings
from chartinsight.storage.analysis_store import AnalysisStore
from chartinsight.storage.database import Database


# 1x1 transparent PNG
TINY_PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

KEY_LEVELS = {
    "support": [{"zone": "44000-44500", "strength": "Strong"}],
    "resistance": [{"zone": "48000-48500", "strength": "Moderate"}],
}

FEATURES = {
    "trend": "Bullish",
    "structure": "Higher Highs, Higher Lows",
    "key_levels": KEY_LEVELS,
    "indicators": [{"name": "RSI", "signal": "Bullish Divergence"}],
}

PATTERNS = {
    "patterns": [
        {"name": "Bull Flag", "probability": 72, "status": "Active", "pattern_type": "Continuation"},
        {"name": "Head and Shoulders", "probability": 35, "status": "Invalidated"},
    ],
    "pattern_summary": "Continuation flag after a failed reversal.",
    "market_context": "Trending market above the 200 EMA.",
    "trading_opportunities": ["Breakout above 48000"],
}

TRADE_PLAN = {
    "entry": "45000-45200",
    "stop_loss": "43800",
    "take_profit": ["48000", "50000"],
    "risk_reward": "1:2.5",
    "recommendation": "Buy the pullback into support",
    "reasoning": "1. Trend is up.\n2. Flag is holding.",
    "confidence": 7,
}

FULL_ANALYSIS = {**FEATURES, **TRADE_PLAN, "patterns": PATTERNS["patterns"]}

BULLISH_PROPOSAL = {
    "viable": True,
    "entry": "45000",
    "stop_loss": "43800",
    "take_profit": "48000",
    "justification": "Higher lows into demand.",
    "confidence": 7,
}

BEARISH_PROPOSAL = {
    "viable": True,
    "entry": "48200",
    "stop_loss": "49000",
    "take_profit": "45500",
    "justification": "Double top at resistance.",
    "confidence": 4,
}

STRUCTURE = {
    "trend": "Bullish",
    "structure": "Higher Highs, Higher Lows",
    "key_levels": KEY_LEVELS,
    "structural_points": ["Break of structure at 46000"],
}

RISK = {
    "volatility": "Normal",
    "risks": ["CPI release tomorrow", "Thin weekend liquidity"],
    "fakeout_probability": 30,
}

ARBITRATION = {
    "decision": "adopt_bullish",
    "bullish_assessment": "Structure supports the long.",
    "bearish_assessment": "Top not confirmed.",
    "entry": "45000",
    "stop_loss": "43800",
    "take_profit": ["48000"],
    "risk_reward": "1:2.5",
    "recommendation": "Long from 45000",
    "reasoning": "Bullish case is backed by structure.",
    "confidence": 7,
}

TIMEFRAME_UP = {"trend": "Uptrend", "structure": "HH/HL", "key_levels": [44000.0, 48000.0], "pattern": "Bull flag"}

TIMEFRAME_SYNTHESIS = {
    **FEATURES,
    **TRADE_PLAN,
    "setup_direction": "Long",
    "counter_trend": False,
}

ANSWER = {
    "answer": "Support holds at 44000 as long as the flag is intact.",
    "confidence": 6,
    "reasoning": "Three touches with strong reactions.",
    "watch_points": ["Close below 44000", "Volume on breakout"],
}

CANNED = {
    "features": FEATURES,
    "patterns": PATTERNS,
    "trade_plan": TRADE_PLAN,
    "full_analysis": FULL_ANALYSIS,
    "bullish": BULLISH_PROPOSAL,
    "bearish": BEARISH_PROPOSAL,
    "structure": STRUCTURE,
    "risk": RISK,
    "arbitration": ARBITRATION,
    "timeframe": TIMEFRAME_UP,
    "timeframe_synthesis": TIMEFRAME_SYNTHESIS,
    "answer": ANSWER,
}

DEFAULT_OUTPUTS = {
    FeatureOutput: FEATURES,
    PatternReport: PATTERNS,
    TradePlanOutput: TRADE_PLAN,
    FullAnalysisOutput: FULL_ANALYSIS,
    StructureReport: STRUCTURE,
    RiskReport: RISK,
    ArbitrationOutput: ARBITRATION,
    TimeframeReport: TIMEFRAME_UP,
    TimeframeSynthesisOutput: TIMEFRAME_SYNTHESIS,
    ChartAnswerOutput: ANSWER,
}


class ScriptedInference:
    """Deterministic inference collaborator.

    Responses are looked up by stage name, then the ``default`` response,
    then by output model.
    A response may be a payload, an exception to raise, a callable
    ``(spec, stage_input)`` returning either, or a list consumed one
    entry per attempt.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Any]] = None,
        delays: Optional[Dict[str, float]] = None,
        default: Any = None,
    ):
        self.responses = dict(responses or {})
        self.default = default
        self.delays = dict(delays or {})
        self.calls: List[tuple] = []
        self.active = 0
        self.max_active = 0

    def inputs(self, stage_name: str) -> list:
        return [stage_input for name, stage_input in self.calls if name == stage_name]

    def call_count(self, stage_name: str) -> int:
        return len(self.inputs(stage_name))

    def _response_for(self, spec, stage_input):
        if spec.name in self.responses:
            response = self.responses[spec.name]
        elif self.default is not None:
            response = self.default
        elif spec.output_model in DEFAULT_OUTPUTS:
            response = DEFAULT_OUTPUTS[spec.output_model]
        elif spec.output_model is PersonaProposal:
            response = BULLISH_PROPOSAL if stage_input.stance == "bullish" else BEARISH_PROPOSAL
        else:
            raise AssertionError(f"no scripted response for stage '{spec.name}'")

        if isinstance(response, list):
            response = response.pop(0)
        if callable(response) and not isinstance(response, BaseException):
            response = response(spec, stage_input)
        return response

    async def __call__(self, spec, stage_input):
        self.calls.append((spec.name, stage_input))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(spec.name)
            if delay:
                await asyncio.sleep(delay)
            response = self._response_for(spec, stage_input)
            if isinstance(response, BaseException):
                raise response
            return copy.deepcopy(response)
        finally:
            self.active -= 1


@pytest.fixture
def canned() -> Dict[str, Dict[str, Any]]:
    """Valid stage payloads, deep-copied per test."""
    return copy.deepcopy(CANNED)


@pytest.fixture
def scripted():
    """Factory for ScriptedInference collaborators."""
    return ScriptedInference


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        claude_api_key="",
        grok_api_key="",
        default_provider="",
        stage_timeout_seconds=2.0,
        synthesis_timeout_seconds=2.0,
        request_deadline_seconds=5.0,
        transport_retries=1,
        debate_adversarial_personas=True,
        annotation_enabled=False,
        default_pipeline="chained",
        database_path=str(tmp_path / "chartinsight.db"),
    )


@pytest.fixture
def make_orchestrator(settings):
    """Build an orchestrator over a scripted collaborator."""
    def _make(inference, annotator=None, **overrides) -> ChartAnalysisOrchestrator:
        config = settings.model_copy(update=overrides) if overrides else settings
        return ChartAnalysisOrchestrator(inference, settings=config, annotator=annotator)
    return _make


@pytest.fixture
def chart_image() -> str:
    """Tiny chart image as a data URI."""
    return f"data:image/png;base64,{TINY_PNG_BASE64}"


@pytest.fixture
def chart_png_bytes() -> bytes:
    """A small but real chart rendered with matplotlib."""
    from matplotlib.backends.backend_agg import FigureCanvasAgg
    from matplotlib.figure import Figure

    fig = Figure(figsize=(3, 2), dpi=50)
    FigureCanvasAgg(fig)
    fig.subplots().plot([1, 3, 2, 5, 4, 6], color="#26a69a")
    buf = BytesIO()
    fig.savefig(buf, format="png")
    return buf.getvalue()


@pytest.fixture
def chart_png_uri(chart_png_bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(chart_png_bytes).decode("ascii")


@pytest.fixture
def store(tmp_path) -> AnalysisStore:
    """Analysis store on a throwaway SQLite file."""
    return AnalysisStore(Database(tmp_path / "history.db"))

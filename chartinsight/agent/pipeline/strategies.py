"""Merge strategies: combine Success outputs of a run into an AnalysisResult.

Every strategy is a pure function of the run, so the same stage outputs
always serialize to the same result.
"""

import logging
from typing import Dict, List, Optional, Sequence

from chartinsight.agent.pipeline.composer import PipelineRun
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
from chartinsight.models.analysis import AnalysisResult, ChartAnswerResult, NOT_AVAILABLE

logger = logging.getLogger(__name__)

COUNTER_TREND_CONFIDENCE_PENALTY = 2

DECISION_LABELS = {
    "adopt_bullish": "Adopt bullish proposal",
    "adopt_bearish": "Adopt bearish proposal",
    "no_trade": "No trade",
    "synthesized": "Synthesized plan",
}

# Direction a timeframe trend favours
_TREND_BIAS: Dict[str, Optional[str]] = {
    "Uptrend": "Long",
    "Downtrend": "Short",
    "Sideways": None,
}


def _required(run: PipelineRun, stage_name: str):
    value = run.value(stage_name)
    if value is None:
        raise ValueError(f"stage '{stage_name}' produced no output")
    return value


def _reduced(confidence: Optional[int]) -> Optional[int]:
    if confidence is None:
        return None
    return max(1, confidence - COUNTER_TREND_CONFIDENCE_PENALTY)


# ---------------------------------------------------------------------------
# Passthrough
# ---------------------------------------------------------------------------

def passthrough_single(run: PipelineRun, stage_name: str = "analysis") -> AnalysisResult:
    """The single analysis stage already holds the complete report."""
    report: FullAnalysisOutput = _required(run, stage_name)
    return AnalysisResult(
        trend=report.trend,
        structure=report.structure,
        key_levels=report.key_levels,
        indicators=report.indicators,
        patterns=report.patterns,
        entry=report.entry,
        stop_loss=report.stop_loss,
        take_profit=report.take_profit,
        risk_reward=report.risk_reward,
        recommendation=report.recommendation,
        reasoning=report.reasoning,
        confidence=report.confidence,
        pipeline=run.graph.name,
    )


def passthrough_chained(
    run: PipelineRun,
    features_stage: str = "features",
    patterns_stage: str = "patterns",
    synthesis_stage: str = "synthesis",
) -> AnalysisResult:
    """Features, verbatim pattern list and the synthesized trade plan.

    Invalidated patterns are kept. A missing pattern report leaves the
    pattern list empty.
    """
    features: FeatureOutput = _required(run, features_stage)
    plan: TradePlanOutput = _required(run, synthesis_stage)
    pattern_report: Optional[PatternReport] = run.value(patterns_stage)

    return AnalysisResult(
        trend=features.trend,
        structure=features.structure,
        key_levels=features.key_levels,
        indicators=features.indicators,
        patterns=list(pattern_report.patterns) if pattern_report else [],
        entry=plan.entry,
        stop_loss=plan.stop_loss,
        take_profit=plan.take_profit,
        risk_reward=plan.risk_reward,
        recommendation=plan.recommendation,
        reasoning=plan.reasoning,
        confidence=plan.confidence,
        pipeline=run.graph.name,
    )


# ---------------------------------------------------------------------------
# Debate arbitration
# ---------------------------------------------------------------------------

def _proposal_line(proposal: PersonaProposal) -> str:
    if not proposal.viable:
        return f"No viable setup (confidence {proposal.confidence}/10)."
    return (
        f"Entry {proposal.entry}, stop {proposal.stop_loss}, target {proposal.take_profit} "
        f"(confidence {proposal.confidence}/10)."
    )


def debate_arbitration(
    run: PipelineRun,
    bullish_stage: str = "bullish",
    bearish_stage: str = "bearish",
    structure_stage: str = "market_structure",
    risk_stage: str = "risk",
    arbitration_stage: str = "arbitration",
) -> AnalysisResult:
    """One verdict over both proposals; reasoning always covers both."""
    bullish: PersonaProposal = _required(run, bullish_stage)
    bearish: PersonaProposal = _required(run, bearish_stage)
    structure: StructureReport = _required(run, structure_stage)
    risk: RiskReport = _required(run, risk_stage)
    verdict: ArbitrationOutput = _required(run, arbitration_stage)

    risks = "\n".join(f"- {item}" for item in risk.risks)
    reasoning = (
        f"### Bullish Proposal\n{_proposal_line(bullish)}\n{bullish.justification}\n\n"
        f"**Assessment:** {verdict.bullish_assessment}\n\n"
        f"### Bearish Proposal\n{_proposal_line(bearish)}\n{bearish.justification}\n\n"
        f"**Assessment:** {verdict.bearish_assessment}\n\n"
        f"### Risk Desk\nVolatility: {risk.volatility}\n{risks}\n\n"
        f"### Decision: {DECISION_LABELS[verdict.decision]}\n{verdict.reasoning}"
    )

    if verdict.decision == "no_trade":
        entry, stop_loss, take_profit, risk_reward = NOT_AVAILABLE, NOT_AVAILABLE, [], NOT_AVAILABLE
    else:
        entry, stop_loss = verdict.entry, verdict.stop_loss
        take_profit, risk_reward = verdict.take_profit, verdict.risk_reward

    return AnalysisResult(
        trend=structure.trend,
        structure=structure.structure,
        key_levels=structure.key_levels,
        indicators=[],
        patterns=[],
        entry=entry,
        stop_loss=stop_loss,
        take_profit=take_profit,
        risk_reward=risk_reward,
        recommendation=verdict.recommendation,
        reasoning=reasoning,
        confidence=verdict.confidence,
        decision=verdict.decision,
        pipeline=run.graph.name,
    )


# ---------------------------------------------------------------------------
# Hierarchical timeframe merge
# ---------------------------------------------------------------------------

def hierarchical_timeframe_merge(
    run: PipelineRun,
    timeframe_stages: Sequence[str],
    synthesis_stage: str = "synthesis",
) -> AnalysisResult:
    """Apply the highest timeframe's trend as the primary constraint.

    - A setup against the highest timeframe is downgraded to no trade,
      unless the synthesis flagged it counter-trend, in which case its
      confidence is reduced.
    - A lower timeframe trending against the highest one, while the setup
      is not opposed, flags the result counter-trend with reduced
      confidence.
    """
    htf: TimeframeReport = _required(run, timeframe_stages[0])
    synthesis: TimeframeSynthesisOutput = _required(run, synthesis_stage)
    lower: List[TimeframeReport] = [
        report for report in (run.value(name) for name in timeframe_stages[1:])
        if report is not None
    ]

    htf_bias = _TREND_BIAS[htf.trend]
    direction = synthesis.setup_direction
    opposed = htf_bias is not None and direction != "None" and direction != htf_bias
    lower_conflict = htf_bias is not None and any(
        _TREND_BIAS[report.trend] not in (None, htf_bias) for report in lower
    )

    entry, stop_loss = synthesis.entry, synthesis.stop_loss
    take_profit, risk_reward = list(synthesis.take_profit), synthesis.risk_reward
    recommendation = synthesis.recommendation
    confidence = synthesis.confidence
    counter_trend = synthesis.counter_trend
    notes: List[str] = [f"Highest timeframe trend: {htf.trend}."]

    if opposed and not synthesis.counter_trend:
        logger.info(f"{direction} setup contradicts HTF {htf.trend}; downgrading to no trade")
        entry, stop_loss, take_profit, risk_reward = NOT_AVAILABLE, NOT_AVAILABLE, [], NOT_AVAILABLE
        recommendation = (
            f"No Trade: the {direction.lower()} setup contradicts the highest-timeframe "
            f"{htf.trend.lower()}. {synthesis.recommendation}"
        )
        confidence = _reduced(confidence)
        counter_trend = False
        notes.append(f"The {direction.lower()} setup fights the primary trend and was downgraded to no trade.")
    elif opposed:
        confidence = _reduced(confidence)
        counter_trend = True
        notes.append(f"Counter-trend {direction.lower()} setup; confidence reduced.")
    elif lower_conflict:
        confidence = _reduced(confidence)
        counter_trend = True
        notes.append("A lower timeframe trends against the highest timeframe; flagged counter-trend, confidence reduced.")

    reasoning = f"{synthesis.reasoning}\n\n### Timeframe Alignment\n" + "\n".join(f"- {n}" for n in notes)

    return AnalysisResult(
        trend=synthesis.trend,
        structure=synthesis.structure,
        key_levels=synthesis.key_levels,
        indicators=synthesis.indicators,
        patterns=synthesis.patterns,
        entry=entry,
        stop_loss=stop_loss,
        take_profit=take_profit,
        risk_reward=risk_reward,
        recommendation=recommendation,
        reasoning=reasoning,
        confidence=confidence,
        counter_trend=counter_trend,
        pipeline=run.graph.name,
    )


# ---------------------------------------------------------------------------
# Chart Q&A
# ---------------------------------------------------------------------------

def answer_passthrough(run: PipelineRun, stage_name: str = "answer") -> ChartAnswerResult:
    answer: ChartAnswerOutput = _required(run, stage_name)
    return ChartAnswerResult(
        answer=answer.answer,
        confidence=answer.confidence,
        watch_points=answer.watch_points,
    )

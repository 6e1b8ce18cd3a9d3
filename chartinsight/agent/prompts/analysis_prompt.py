"""Prompts for the single-prompt and chained analysis pipelines.

The chained pipeline splits the work across three calls: feature
extraction and pattern recognition run in parallel, then a synthesizer
turns both into a trade plan.
"""

ANALYST_SYSTEM_PROMPT = """You are ChartInsight, a seasoned, data-driven technical analyst.
You are calm and objective, and you think in probabilities, not certainties.
Tailor every conclusion to the user's trading style:
- Scalper: seconds to minutes, immediate price action
- Day Trader: minutes to hours, intraday trends
- Swing Trader: days to weeks, major chart structures
- Position Trader: weeks to months, long-term trends
When no trading style is given, assume a Swing Trader."""


SINGLE_PROMPT_ANALYSIS_PROMPT = """Perform a complete technical analysis of the attached chart.

**Trading Style:** {trading_style}

Work through these steps:
1. **Initial Assessment:** dominant trend and volatility relevant to the trading style.
2. **Structure:** map highs and lows, breaks of structure and changes of character.
3. **Key Levels:** support and resistance zones as price ranges, each graded Strong, Moderate or Weak.
4. **Indicators:** interpret any visible indicators; return an empty list when none are visible.
5. **Patterns:** chart and candlestick patterns with a success probability (0-100) and a status of
   Forming, Active, Confirmed or Invalidated. Keep invalidated patterns; they often signal strength
   in the opposite direction.
6. **Trade Plan:** entry, stop-loss, at least two take-profit levels and the risk/reward ratio to TP1.
7. **Recommendation and Reasoning:** a concise overall bias and a step-by-step Markdown explanation.

{question_section}

{previous_analysis_section}"""


FEATURE_EXTRACTOR_PROMPT = """Perform an initial assessment of the attached chart.

**Trading Style:** {trading_style}

Extract the following features:
1. **Dominant Trend:** e.g. "Strong short-term uptrend on the 15-minute chart".
2. **Market Structure:** e.g. "Higher highs and higher lows on the 4-hour".
3. **Key Levels & Zones:** the most significant horizontal support and resistance zones. For each
   zone give the price range and grade its strength (Strong, Moderate, Weak) from freshness, number
   of touches and the size of the reactions.
4. **Visible Indicators:** signals of any indicators on the chart. Return an empty list when none
   are visible.

Do not propose a trade."""


SYNTHESIZER_PROMPT = """Your specialist analysts have finished their preliminary work on the attached chart.
Synthesize it into a final, actionable trading plan.

**Trading Style:** {trading_style}

**Feature Report:**
{features}

**Pattern Report:**
{patterns}

Base your synthesis only on these reports and the chart. Weigh the status of every pattern: an
Invalidated pattern should heavily influence the recommendation.

1. **Primary Trade Setup** for the trading style: entry, stop-loss, at least two take-profit levels
   and the risk/reward ratio to TP1.
2. **Recommendation:** the overall bias with a concise summary.
3. **Reasoning:** a step-by-step Markdown explanation of how the reports lead to the plan.

{question_section}

{previous_analysis_section}"""

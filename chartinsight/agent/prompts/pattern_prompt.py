"""Pattern recognizer prompt.

The recognizer is an auxiliary stage: its report enriches the chained
synthesis and the final pattern list, but the analysis stands without it.
"""

PATTERN_RECOGNIZER_SYSTEM_PROMPT = """You are a pattern recognition specialist with institutional trading experience.
You identify, validate and track the evolution of chart patterns."""


PATTERN_RECOGNIZER_PROMPT = """Identify the chart patterns on the attached chart.

**Trading Style:** {trading_style}
**Chart Timeframe:** {timeframe}

Scan for:
- Classical patterns: head and shoulders, triangles, flags and pennants, wedges, double and triple
  tops and bottoms, cup and handle
- Advanced patterns: Wyckoff phases, Elliott Wave structures, harmonic patterns
- Institutional patterns: order blocks, fair value gaps, liquidity sweeps, breaks of structure
- Volume patterns: profile imbalances, climaxes, accumulation and distribution

For each pattern give:
1. **Probability** (0-100) of the expected outcome
2. **Status**: Forming, Active, Confirmed or Invalidated
3. **Type**: Continuation, Reversal or Neutral
4. **Formation Quality** and **Volume Confirmation**, each 1-10
5. **Stage** of its evolution, from initial formation to target achieved or failed
6. **Psychology**: what retail traders see, evidence of smart money positioning, where liquidity
   clusters and the probability of a false signal
7. **Invalidation level**, **target zones** and expected **time horizon**

Report invalidated patterns too. Finish with a pattern summary, the market context and the concrete
trading opportunities the patterns offer for this trading style."""

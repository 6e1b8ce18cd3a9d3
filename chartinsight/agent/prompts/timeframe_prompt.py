"""Prompts for multi-timeframe analysis.

Each timeframe is read on its own, highest first; the synthesis then
builds one plan with the highest timeframe as the primary constraint.
"""

TIMEFRAME_SYSTEM_PROMPT = """You are a technical analyst specializing in multi-timeframe analysis.
You read one timeframe at a time and report only what that chart shows."""


TIMEFRAME_PROMPT = """**Trading Style:** {trading_style}
**Timeframe:** {timeframe_label} (chart {image_index} of {image_count}, 0 is the highest timeframe)

Read the attached chart and report its trend (Uptrend, Downtrend or Sideways), its market structure,
the key price levels and the most important pattern. Do not propose a trade."""


TIMEFRAME_SYNTHESIS_PROMPT = """Synthesize a single trade plan from the timeframe reports below and the attached
charts. Each report is labeled with its timeframe; reports and attached charts follow the
same order, highest timeframe first. A timeframe whose read failed is left out entirely.

**Trading Style:** {trading_style}

**Timeframe Reports:**
{timeframes}

Workflow:
1. **Highest timeframe (primary context):** its trend sets the primary bias.
2. **Middle timeframe (refinement):** how price behaves within that context.
3. **Lowest timeframe (entry and confirmation):** low-risk entries aligned with the primary bias.
4. **Synthesis:** build the plan on confluence across timeframes. If the timeframes do not align,
   set setup_direction to None and recommend NO TRADE. If you deliberately trade against the
   highest timeframe trend, set counter_trend to true and explain why.

Fill trend, structure, key levels, indicators, patterns from any timeframe, the plan, a
recommendation, your confidence (1-10) and reasoning that explains the process.

{question_section}"""

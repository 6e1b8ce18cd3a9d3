"""Prompt templates for every pipeline stage and the renderer that fills them.

- Analysis: single-prompt report, feature extraction and chained synthesis
- Patterns: auxiliary pattern recognizer
- Debate: persona traders, neutral desks and the arbitrating head analyst
- Timeframes: per-timeframe reads and the hierarchical synthesis
- Questions: follow-up chart Q&A
"""

from chartinsight.agent.prompts.render import NONE_PROVIDED, format_value, render
from chartinsight.agent.prompts.analysis_prompt import (
    ANALYST_SYSTEM_PROMPT,
    FEATURE_EXTRACTOR_PROMPT,
    SINGLE_PROMPT_ANALYSIS_PROMPT,
    SYNTHESIZER_PROMPT,
)
from chartinsight.agent.prompts.pattern_prompt import (
    PATTERN_RECOGNIZER_PROMPT,
    PATTERN_RECOGNIZER_SYSTEM_PROMPT,
)
from chartinsight.agent.prompts.debate_prompt import (
    ARBITRATION_PROMPT,
    ARBITRATION_SYSTEM_PROMPT,
    MARKET_STRUCTURE_PROMPT,
    MARKET_STRUCTURE_SYSTEM_PROMPT,
    PERSONA_PROMPT,
    PERSONA_SYSTEM_PROMPT,
    RISK_MANAGER_PROMPT,
    RISK_MANAGER_SYSTEM_PROMPT,
)
from chartinsight.agent.prompts.timeframe_prompt import (
    TIMEFRAME_PROMPT,
    TIMEFRAME_SYNTHESIS_PROMPT,
    TIMEFRAME_SYSTEM_PROMPT,
)
from chartinsight.agent.prompts.question_prompt import QUESTION_PROMPT

__all__ = [
    "render",
    "format_value",
    "NONE_PROVIDED",
    # Analysis
    "ANALYST_SYSTEM_PROMPT",
    "SINGLE_PROMPT_ANALYSIS_PROMPT",
    "FEATURE_EXTRACTOR_PROMPT",
    "SYNTHESIZER_PROMPT",
    # Patterns
    "PATTERN_RECOGNIZER_SYSTEM_PROMPT",
    "PATTERN_RECOGNIZER_PROMPT",
    # Debate
    "PERSONA_SYSTEM_PROMPT",
    "PERSONA_PROMPT",
    "MARKET_STRUCTURE_SYSTEM_PROMPT",
    "MARKET_STRUCTURE_PROMPT",
    "RISK_MANAGER_SYSTEM_PROMPT",
    "RISK_MANAGER_PROMPT",
    "ARBITRATION_SYSTEM_PROMPT",
    "ARBITRATION_PROMPT",
    # Timeframes
    "TIMEFRAME_SYSTEM_PROMPT",
    "TIMEFRAME_PROMPT",
    "TIMEFRAME_SYNTHESIS_PROMPT",
    # Questions
    "QUESTION_PROMPT",
]

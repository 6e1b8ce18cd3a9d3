"""Chart Q&A prompt."""

QUESTION_PROMPT = """**Trading Style:** {trading_style}

{previous_analysis_section}

Answer the user's question about the attached chart. When no previous analysis is available, first
run a silent internal analysis (trend, structure, key zones, indicators, patterns, the bullish and
bearish cases) and base the answer on it. Do not output the internal steps.

**User's Question:** "{question}"

Give a direct, professional answer, your confidence (1-10), a short reasoning and the key levels or
events to watch."""

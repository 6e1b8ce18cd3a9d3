"""Prompt rendering.

Templates are ``str.format`` strings whose placeholders name fields of
the stage input, plus a few derived sections computed from those fields.
Rendering reads nothing but its arguments.
"""

import json
from typing import Any, Dict

from pydantic import BaseModel


NONE_PROVIDED = "None provided."

# Image payloads travel as attachments, never inside prompt text
_EXCLUDED_FIELDS = {"images"}


def format_value(value: Any) -> str:
    """Format one input value for prompt text."""
    if value is None:
        return NONE_PROVIDED
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return f"{value:g}" if isinstance(value, float) else str(value)
    if isinstance(value, BaseModel):
        return json.dumps(value.model_dump(mode="json", exclude_none=True), indent=2)
    if isinstance(value, (list, tuple)):
        if not value:
            return NONE_PROVIDED
        if all(isinstance(item, str) for item in value):
            return "\n".join(f"- {item}" for item in value)
        return json.dumps(
            [item.model_dump(mode="json", exclude_none=True) if isinstance(item, BaseModel) else item
             for item in value],
            indent=2,
        )
    return str(value)


def _question_section(context: BaseModel) -> str:
    question = getattr(context, "question", None)
    if not question:
        return ""
    return (
        f"**User's Specific Question:** {question}\n"
        "Address this question within your final analysis."
    )


def _previous_analysis_section(context: BaseModel) -> str:
    previous = getattr(context, "previous_analysis", None)
    if previous is None or previous.is_error:
        return ""
    support = ", ".join(f"{lvl.zone} ({lvl.strength})" for lvl in previous.key_levels.support)
    resistance = ", ".join(f"{lvl.zone} ({lvl.strength})" for lvl in previous.key_levels.resistance)
    patterns = "; ".join(f"{p.name} ({p.probability:g}%, {p.status})" for p in previous.patterns)
    return (
        "**Previous Analysis Context:**\n"
        "You have already analyzed this chart. Summary of your findings:\n"
        f"- Trend: {previous.trend}\n"
        f"- Structure: {previous.structure}\n"
        f"- Key Zones: Support at {support or NONE_PROVIDED} Resistance at {resistance or NONE_PROVIDED}\n"
        f"- Patterns: {patterns or NONE_PROVIDED}\n"
        f"- Initial Recommendation: {previous.recommendation}\n"
        "Use this context to keep your answer informed and consistent."
    )


def _timeframe_reports(context: BaseModel) -> Dict[str, str]:
    entries = getattr(context, "timeframes", None)
    if not entries:
        return {}
    blocks = [
        f"### {entry.timeframe_label} (attached chart {position} of {len(entries)})\n"
        f"{format_value(entry.output)}"
        for position, entry in enumerate(entries, start=1)
    ]
    return {"timeframes": "\n\n".join(blocks)}


def _persona_sections(context: BaseModel) -> Dict[str, str]:
    stance = getattr(context, "stance", None)
    if stance is None:
        return {}
    opposite = "bearish" if stance == "bullish" else "bullish"
    if getattr(context, "adversarial", True):
        instruction = (
            f"You must ignore all {opposite} signals and construct the most "
            f"compelling {stance} trade setup you can find."
        )
    else:
        instruction = (
            f"Acknowledge the strongest {opposite} signals, then construct the most "
            f"compelling {stance} setup that survives them."
        )
    return {
        "direction": "LONG" if stance == "bullish" else "SHORT",
        "opposite_stance": opposite,
        "contrary_signals_instruction": instruction,
    }


def render(template: str, context: BaseModel) -> str:
    """Render a prompt template with a validated stage input.

    Args:
        template: ``str.format`` template
        context: The stage input record

    Returns:
        Prompt text

    Raises:
        KeyError: If the template names a value the input does not provide
    """
    values: Dict[str, str] = {
        name: format_value(getattr(context, name))
        for name in type(context).model_fields
        if name not in _EXCLUDED_FIELDS
    }
    values["image_count"] = str(len(getattr(context, "images", []) or []))
    values["question_section"] = _question_section(context)
    values["previous_analysis_section"] = _previous_analysis_section(context)
    values.update(_persona_sections(context))
    values.update(_timeframe_reports(context))
    return template.format_map(values)

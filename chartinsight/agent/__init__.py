"""Agent module for AI-powered chart analysis.

Stage pipelines (single-prompt, chained, debate, multi-timeframe and chart
Q&A) composed over a pluggable inference collaborator.
"""

from chartinsight.agent.orchestrator import ChartAnalysisOrchestrator, get_orchestrator

__all__ = [
    "ChartAnalysisOrchestrator",
    "get_orchestrator",
]

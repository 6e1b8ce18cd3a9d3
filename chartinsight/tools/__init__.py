"""Local tools used by the pipelines."""

from chartinsight.tools.chart_annotator import (
    ChartAnnotator,
    load_image_bytes,
    render_annotated_chart,
)

__all__ = [
    "ChartAnnotator",
    "load_image_bytes",
    "render_annotated_chart",
]

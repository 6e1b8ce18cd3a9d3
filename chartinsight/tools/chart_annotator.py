"""Draw a finished analysis onto the original chart image.

The chart is shown unchanged on the left; a side panel lists the key
levels, the trade plan and the patterns, with invalidated patterns
struck through. Output is a PNG data URI.
"""

import asyncio
import base64
import logging
from io import BytesIO
from typing import Dict, List, Optional, Tuple

import httpx
import matplotlib.image as mpimg
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from chartinsight.agent.pipeline.contracts import StageSpec
from chartinsight.agent.providers import parse_image_ref
from chartinsight.agent.schemas.stages import AnnotationInput
from chartinsight.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

# Panel colors
SUPPORT_COLOR = "#26a69a"
RESISTANCE_COLOR = "#ef5350"
ENTRY_COLOR = "#2962ff"
MUTED_COLOR = "#9e9e9e"
TEXT_COLOR = "#212121"

LINE_HEIGHT = 0.042


async def load_image_bytes(ref: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
    """Fetch the raw bytes of an image reference.

    Raises:
        ValueError: If the reference is malformed or not valid base64
        httpx.HTTPError: If a remote image cannot be downloaded
    """
    image = parse_image_ref(ref)
    if image.is_inline:
        try:
            return base64.b64decode(image.data, validate=True)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid base64 image data: {e}") from e

    if client is not None:
        response = await client.get(image.url)
        response.raise_for_status()
        return response.content

    async with httpx.AsyncClient(timeout=httpx.Timeout(30.0)) as owned:
        response = await owned.get(image.url)
        response.raise_for_status()
        return response.content


def _panel_lines(analysis: AnalysisResult) -> List[Tuple[str, str, bool]]:
    """(text, color, struck_through) rows for the side panel."""
    lines: List[Tuple[str, str, bool]] = [
        (f"Trend: {analysis.trend}", TEXT_COLOR, False),
        (f"Structure: {analysis.structure}", TEXT_COLOR, False),
        ("", TEXT_COLOR, False),
    ]

    for level in analysis.key_levels.resistance:
        lines.append((f"R  {level.zone} ({level.strength})", RESISTANCE_COLOR, False))
    for level in analysis.key_levels.support:
        lines.append((f"S  {level.zone} ({level.strength})", SUPPORT_COLOR, False))

    lines.append(("", TEXT_COLOR, False))
    lines.append((f"Entry: {analysis.entry}", ENTRY_COLOR, False))
    lines.append((f"Stop: {analysis.stop_loss}", RESISTANCE_COLOR, False))
    for index, target in enumerate(analysis.take_profit, start=1):
        lines.append((f"TP{index}: {target}", SUPPORT_COLOR, False))
    lines.append((f"R:R {analysis.risk_reward}", TEXT_COLOR, False))

    if analysis.patterns:
        lines.append(("", TEXT_COLOR, False))
        for pattern in analysis.patterns:
            invalidated = pattern.status == "Invalidated"
            lines.append((
                f"{pattern.name} {pattern.probability:g}% ({pattern.status})",
                MUTED_COLOR if invalidated else TEXT_COLOR,
                invalidated,
            ))
    return lines


def render_annotated_chart(image_bytes: bytes, analysis: AnalysisResult) -> str:
    """Render the annotated chart.

    Args:
        image_bytes: Original PNG or JPEG bytes
        analysis: Finished analysis to draw

    Returns:
        PNG data URI

    Raises:
        ValueError: If the image cannot be decoded
    """
    try:
        pixels = mpimg.imread(BytesIO(image_bytes))
    except (OSError, SyntaxError, ValueError) as e:
        raise ValueError(f"Unreadable chart image: {e}") from e

    # Figure and its Agg canvas are owned by this call; pyplot state is not
    # thread-safe and rendering runs in a worker thread
    fig = Figure(figsize=(14, 7))
    canvas = FigureCanvasAgg(fig)
    chart_ax, panel_ax = fig.subplots(1, 2, gridspec_kw={"width_ratios": [3, 1.2]})

    chart_ax.imshow(pixels)
    chart_ax.set_axis_off()

    panel_ax.set_axis_off()
    panel_ax.set_xlim(0, 1)
    panel_ax.set_ylim(0, 1)
    panel_ax.set_title(analysis.recommendation[:60], fontsize=10, loc="left")

    renderer = canvas.get_renderer()
    y = 0.97
    for text, color, struck in _panel_lines(analysis):
        if y < 0.02:
            break
        if text:
            label = panel_ax.text(0.02, y, text, fontsize=9, color=color, va="top", ha="left")
            if struck:
                # matplotlib has no strikethrough; draw a line across the text extent
                bbox = label.get_window_extent(renderer).transformed(panel_ax.transData.inverted())
                mid = (bbox.y0 + bbox.y1) / 2
                panel_ax.plot([bbox.x0, bbox.x1], [mid, mid], color=color, linewidth=1)
        y -= LINE_HEIGHT

    buf = BytesIO()
    # No metadata so identical inputs give identical bytes
    fig.savefig(buf, format="png", dpi=100, bbox_inches="tight", pad_inches=0.2,
                metadata={"Software": None})

    buf.seek(0)
    image_base64 = base64.b64encode(buf.read()).decode("utf-8")
    buf.close()
    return f"data:image/png;base64,{image_base64}"


class ChartAnnotator:
    """Local stage invoker for the annotation stage.

    Usage:
        result = await executor.execute(spec, AnnotationInput(...), invoke=ChartAnnotator())
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def __call__(self, spec: StageSpec, stage_input: AnnotationInput) -> Dict[str, str]:
        image_bytes = await load_image_bytes(stage_input.images[0], self._client)
        logger.info(f"Annotating chart ({len(image_bytes)} bytes)")
        data_uri = await asyncio.to_thread(render_annotated_chart, image_bytes, stage_input.analysis)
        return {"annotated_image": data_uri}

"""ChartInsight - multi-stage chart image analysis service."""

__version__ = "1.0.0"

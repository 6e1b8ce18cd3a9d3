#!/usr/bin/env python
"""Convenience script to run the ChartInsight API server."""

import uvicorn
from chartinsight.config import get_settings

if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "chartinsight.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level=settings.log_level.lower(),
    )

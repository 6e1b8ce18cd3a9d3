"""Middleware module for ChartInsight."""

from chartinsight.middleware.rate_limit import (
    RateLimitExceeded,
    limiter,
    rate_limit_ai,
    rate_limit_standard,
)

__all__ = ["limiter", "RateLimitExceeded", "rate_limit_ai", "rate_limit_standard"]

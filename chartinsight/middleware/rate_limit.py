"""Rate limiting middleware for ChartInsight.

Uses slowapi to provide per-caller rate limiting.
"""

import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request

from chartinsight.config import get_settings

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def get_caller_identifier(request: Request) -> str:
    """Get rate limit identifier from request.

    Priority:
    1. Caller-supplied user id header
    2. IP address
    """
    user_id = request.headers.get(USER_HEADER, "").strip()
    if user_id:
        return f"user:{user_id[:64]}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_caller_identifier,
    default_limits=[f"{get_settings().rate_limit_per_minute}/minute"],
)


def get_rate_limit_string(per_minute: int) -> str:
    """Create rate limit string for slowapi."""
    return f"{per_minute}/minute"


def rate_limit_standard(func):
    """Standard rate limit for history endpoints."""
    settings = get_settings()
    return limiter.limit(get_rate_limit_string(settings.rate_limit_per_minute))(func)


def rate_limit_ai(func):
    """Stricter rate limit for endpoints that call a model provider."""
    settings = get_settings()
    return limiter.limit(get_rate_limit_string(settings.rate_limit_ai_per_minute))(func)


__all__ = ["limiter", "RateLimitExceeded", "rate_limit_standard", "rate_limit_ai", "get_caller_identifier"]

"""Per-client rate limiting for proxied inference requests.

The limiter is process-wide: one ledger per running process, shared by
every request that process handles.
"""

from typing import Optional

from aiproxy.app.core.config import settings
from aiproxy.app.core.logging import get_logger
from aiproxy.app.services.rate_limit.limiter import SlidingWindowRateLimiter
from aiproxy.app.services.rate_limit.models import RateLimitDecision, RateLimitTier

logger = get_logger(__name__)

__all__ = [
    "RateLimitDecision",
    "RateLimitTier",
    "SlidingWindowRateLimiter",
    "get_rate_limiter",
    "reset_rate_limiter",
    "tiers_from_settings",
]


def tiers_from_settings() -> list[RateLimitTier]:
    """Build limiter tiers from the configured tier list."""
    return [
        RateLimitTier(
            name=tier.name,
            window_seconds=tier.window_seconds,
            max_requests=tier.max_requests,
        )
        for tier in settings.rate_limit_tiers
    ]


# Global rate limiter instance
_rate_limiter: Optional[SlidingWindowRateLimiter] = None


def get_rate_limiter() -> SlidingWindowRateLimiter:
    """Get the process-wide rate limiter, creating it on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = SlidingWindowRateLimiter(
            tiers=tiers_from_settings(),
            sweep_interval=settings.rate_limit_sweep_interval,
        )
        logger.info(
            "Rate limiter initialized: "
            + ", ".join(
                f"{t.name}={t.max_requests}/{t.window_seconds}s"
                for t in _rate_limiter.tiers
            )
        )
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset the global rate limiter (useful for testing)."""
    global _rate_limiter
    _rate_limiter = None

"""Rate limiting data models.

This module contains dataclasses for tier configuration and decisions.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RateLimitTier:
    """A named sliding window rule."""
    name: str
    window_seconds: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check."""
    allowed: bool
    tier: Optional[str] = None
    limit: Optional[int] = None
    retry_after: Optional[int] = None

    @classmethod
    def allow(cls) -> "RateLimitDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, tier: RateLimitTier) -> "RateLimitDecision":
        return cls(
            allowed=False,
            tier=tier.name,
            limit=tier.max_requests,
            retry_after=tier.window_seconds,
        )

"""In-process usage statistics for the proxy.

Counters only ever grow for the life of the process. Nothing is persisted;
a restart (or a fresh serverless instance) starts again from zero.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Set

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from aiproxy.app.core.clock import ClockSource, SystemClock
from aiproxy.app.core.logging import get_logger, mask_identity
from aiproxy.app.services.rate_limit import get_rate_limiter

logger = get_logger(__name__)

# Floor for the uptime divisor right after startup
MIN_UPTIME_HOURS = 1e-6


class UsageSnapshot(BaseModel):
    """Point-in-time view of usage counters, serialized in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    total_requests: int
    unique_identity_count: int
    error_count: int
    rate_limit_hit_count: int
    uptime_seconds: float
    uptime_hours: float
    requests_per_uptime_hour: float
    active_identity_count: int


@dataclass
class UsageTelemetry:
    """Collects served-request statistics.

    Requests turned away by the rate limiter are counted separately through
    ``record_rate_limit_hit`` and are not part of ``total_requests``.
    """

    clock: ClockSource = field(default_factory=SystemClock)

    # Reports how many identities the rate limiter currently tracks
    active_identities: Optional[Callable[[], int]] = None

    _total_requests: int = 0
    _error_count: int = 0
    _rate_limit_hits: int = 0
    _identities: Set[str] = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _start_time: float = field(init=False)

    def __post_init__(self) -> None:
        self._start_time = self.clock.now()

    def record_request(
        self,
        identity: str,
        success: bool,
        user_agent: Optional[str] = None,
        prompt_length: int = 0,
    ) -> None:
        """Count one served request.

        Args:
            identity: Client identity the request was attributed to
            success: False for rejected, failed or errored requests
            user_agent: Client user agent, for the usage log line only
            prompt_length: Prompt size in characters, for the usage log line only
        """
        with self._lock:
            self._total_requests += 1
            self._identities.add(identity)
            if not success:
                self._error_count += 1
            total = self._total_requests
            unique = len(self._identities)

        logger.info(
            "usage",
            extra={
                "client_id": mask_identity(identity),
                "user_agent": (user_agent or "unknown")[:50],
                "prompt_length": prompt_length,
                "success": success,
                "total_requests": total,
                "unique_clients": unique,
            },
        )

    def record_rate_limit_hit(self) -> None:
        with self._lock:
            self._rate_limit_hits += 1

    def snapshot(self, now: Optional[float] = None) -> UsageSnapshot:
        """Build a snapshot of the counters as of ``now``."""
        if now is None:
            now = self.clock.now()
        active = self.active_identities() if self.active_identities else 0

        with self._lock:
            uptime_seconds = max(0.0, now - self._start_time)
            uptime_hours = uptime_seconds / 3600
            per_hour = self._total_requests / max(uptime_hours, MIN_UPTIME_HOURS)
            return UsageSnapshot(
                total_requests=self._total_requests,
                unique_identity_count=len(self._identities),
                error_count=self._error_count,
                rate_limit_hit_count=self._rate_limit_hits,
                uptime_seconds=round(uptime_seconds, 2),
                uptime_hours=round(uptime_hours, 1),
                requests_per_uptime_hour=round(per_hour, 1),
                active_identity_count=active,
            )


# Global usage telemetry instance
_usage_telemetry: Optional[UsageTelemetry] = None


def get_usage_telemetry() -> UsageTelemetry:
    """Get the process-wide usage telemetry instance."""
    global _usage_telemetry
    if _usage_telemetry is None:
        _usage_telemetry = UsageTelemetry(
            active_identities=lambda: get_rate_limiter().active_identity_count()
        )
    return _usage_telemetry


def reset_usage_telemetry() -> None:
    """Reset the global usage telemetry (useful for testing)."""
    global _usage_telemetry
    _usage_telemetry = None

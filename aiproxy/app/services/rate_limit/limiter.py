"""Multi-tier sliding window rate limiter.

Each client identity owns one timestamp window per tier. A request is
admitted only when every tier has room, and is then recorded in every tier
at once; a denied request is recorded nowhere.

State lives in process memory. Separate processes (or serverless instances)
keep separate ledgers, so the effective limit across a scaled-out deployment
is the per-instance limit times the number of instances.
"""

import threading
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional

from aiproxy.app.core.logging import get_logger
from aiproxy.app.services.rate_limit.models import RateLimitDecision, RateLimitTier

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """In-memory multi-tier sliding window limiter.

    Tiers are evaluated in the order given; the first tier that is full is
    the one reported back to the caller.

    Memory is bounded by active identities: every ``sweep_interval``
    decisions the ledger is pruned and identities with no remaining
    timestamps are dropped.
    """

    DEFAULT_SWEEP_INTERVAL = 100

    def __init__(
        self,
        tiers: Iterable[RateLimitTier],
        sweep_interval: int = DEFAULT_SWEEP_INTERVAL,
    ):
        """Initialize rate limiter.

        Args:
            tiers: Tier rules in priority order
            sweep_interval: Number of decisions between ledger sweeps
        """
        self._tiers: tuple[RateLimitTier, ...] = tuple(tiers)
        if not self._tiers:
            raise ValueError("At least one rate limit tier is required")
        if len({tier.name for tier in self._tiers}) != len(self._tiers):
            raise ValueError("Rate limit tier names must be unique")
        if sweep_interval < 1:
            raise ValueError("sweep_interval must be at least 1")

        self._sweep_interval = sweep_interval
        self._ledger: Dict[str, Dict[str, Deque[float]]] = {}
        self._decisions = 0
        self._lock = threading.Lock()

    @property
    def tiers(self) -> tuple[RateLimitTier, ...]:
        return self._tiers

    def get_tier(self, name: str) -> Optional[RateLimitTier]:
        for tier in self._tiers:
            if tier.name == name:
                return tier
        return None

    def check_and_record(self, identity: str, now: float) -> RateLimitDecision:
        """Admit or deny a request, recording it in every tier if admitted."""
        with self._lock:
            self._tick(now)
            windows = self._windows_for(identity)
            denied = self._first_full_tier(windows, now)
            if denied is not None:
                return RateLimitDecision.deny(denied)
            for tier in self._tiers:
                windows[tier.name].append(now)
            return RateLimitDecision.allow()

    def check(self, identity: str, now: float) -> RateLimitDecision:
        """Evaluate the identity's windows without recording anything."""
        with self._lock:
            self._tick(now)
            windows = self._ledger.get(identity)
            if windows is None:
                return RateLimitDecision.allow()
            denied = self._first_full_tier(windows, now)
            if denied is not None:
                return RateLimitDecision.deny(denied)
            return RateLimitDecision.allow()

    def sweep(self, now: float) -> int:
        """Prune all windows and drop identities with nothing left.

        Returns:
            Number of identities removed
        """
        with self._lock:
            return self._sweep(now)

    def usage(self, identity: str, now: float) -> Dict[str, int]:
        """Current per-tier request counts for an identity."""
        with self._lock:
            windows = self._ledger.get(identity)
            if windows is None:
                return {tier.name: 0 for tier in self._tiers}
            for tier in self._tiers:
                self._prune(windows[tier.name], tier, now)
            return {tier.name: len(windows[tier.name]) for tier in self._tiers}

    def active_identity_count(self) -> int:
        with self._lock:
            return len(self._ledger)

    def _tick(self, now: float) -> None:
        self._decisions += 1
        if self._decisions % self._sweep_interval == 0:
            removed = self._sweep(now)
            if removed:
                logger.debug(
                    f"Rate limit sweep removed {removed} idle clients",
                    extra={"active_clients": len(self._ledger)},
                )

    def _windows_for(self, identity: str) -> Dict[str, Deque[float]]:
        windows = self._ledger.get(identity)
        if windows is None:
            windows = {tier.name: deque() for tier in self._tiers}
            self._ledger[identity] = windows
        return windows

    def _first_full_tier(
        self, windows: Dict[str, Deque[float]], now: float
    ) -> Optional[RateLimitTier]:
        for tier in self._tiers:
            window = windows[tier.name]
            self._prune(window, tier, now)
            if len(window) >= tier.max_requests:
                return tier
        return None

    @staticmethod
    def _prune(window: Deque[float], tier: RateLimitTier, now: float) -> None:
        cutoff = now - tier.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    def _sweep(self, now: float) -> int:
        idle: List[str] = []
        for identity, windows in self._ledger.items():
            for tier in self._tiers:
                self._prune(windows[tier.name], tier, now)
            if all(not window for window in windows.values()):
                idle.append(identity)
        for identity in idle:
            del self._ledger[identity]
        return len(idle)

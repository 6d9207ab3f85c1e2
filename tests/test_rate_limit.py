"""Tests for the multi-tier sliding window rate limiter."""

import threading
from unittest.mock import patch

import pytest

from aiproxy.app.core.clock import ManualClock
from aiproxy.app.services.rate_limit import (
    RateLimitDecision,
    RateLimitTier,
    SlidingWindowRateLimiter,
    get_rate_limiter,
    reset_rate_limiter,
    tiers_from_settings,
)


DEFAULT_TIERS = [
    RateLimitTier(name="minute", window_seconds=60, max_requests=10),
    RateLimitTier(name="hour", window_seconds=3600, max_requests=50),
    RateLimitTier(name="day", window_seconds=86400, max_requests=200),
]


class TestSlidingWindowRateLimiter:
    """Tests for admission decisions."""

    @pytest.fixture
    def limiter(self):
        return SlidingWindowRateLimiter(tiers=DEFAULT_TIERS)

    @pytest.fixture
    def clock(self):
        return ManualClock(start=1000.0)

    def test_allows_requests_under_limit(self, limiter, clock):
        """Test that the first request is allowed and recorded everywhere."""
        decision = limiter.check_and_record("1.2.3.4", clock.now())
        assert decision.allowed is True
        assert limiter.usage("1.2.3.4", clock.now()) == {
            "minute": 1, "hour": 1, "day": 1
        }

    def test_eleventh_request_in_a_second_is_denied(self, limiter, clock):
        """Test that 10 requests pass and the 11th hits the minute tier."""
        decisions = []
        for _ in range(11):
            decisions.append(limiter.check_and_record("1.2.3.4", clock.now()))
            clock.advance(0.05)

        assert all(d.allowed for d in decisions[:10])
        assert decisions[10] == RateLimitDecision(
            allowed=False, tier="minute", limit=10, retry_after=60
        )

    def test_denial_count_equals_tier_max(self, limiter, clock):
        """Test that a denied request is not recorded in the violated tier."""
        for _ in range(10):
            limiter.check_and_record("client", clock.now())

        for _ in range(5):
            assert limiter.check_and_record("client", clock.now()).allowed is False
            assert limiter.usage("client", clock.now())["minute"] == 10

    def test_denial_does_not_consume_longer_tiers(self, limiter, clock):
        """Test that a minute-tier denial leaves hour and day untouched."""
        for _ in range(10):
            limiter.check_and_record("client", clock.now())
        before = limiter.usage("client", clock.now())

        decision = limiter.check_and_record("client", clock.now())

        assert decision.tier == "minute"
        assert limiter.usage("client", clock.now()) == before

    def test_admitted_again_after_window(self, limiter, clock):
        """Test that the minute window slides once 60 seconds pass."""
        for _ in range(10):
            limiter.check_and_record("client", clock.now())
        assert limiter.check_and_record("client", clock.now()).allowed is False

        clock.advance(60)

        assert limiter.check_and_record("client", clock.now()).allowed is True
        assert limiter.usage("client", clock.now()) == {
            "minute": 1, "hour": 11, "day": 11
        }

    def test_window_is_still_closed_just_before_expiry(self, limiter, clock):
        for _ in range(10):
            limiter.check_and_record("client", clock.now())

        clock.advance(59.9)

        assert limiter.check_and_record("client", clock.now()).allowed is False

    def test_hour_tier_denies_after_minute_windows_slide(self, limiter, clock):
        """Test that the hour tier applies once minute quota keeps refreshing."""
        for _ in range(5):
            for _ in range(10):
                assert limiter.check_and_record("client", clock.now()).allowed
            clock.advance(60)

        decision = limiter.check_and_record("client", clock.now())
        assert decision.allowed is False
        assert decision.tier == "hour"
        assert decision.retry_after == 3600
        assert limiter.usage("client", clock.now())["hour"] == 50

    def test_first_tier_in_order_is_reported(self, clock):
        """Test the tie-break when several tiers are full at once."""
        limiter = SlidingWindowRateLimiter(tiers=[
            RateLimitTier(name="minute", window_seconds=60, max_requests=2),
            RateLimitTier(name="hour", window_seconds=3600, max_requests=2),
        ])
        limiter.check_and_record("client", clock.now())
        limiter.check_and_record("client", clock.now())

        decision = limiter.check_and_record("client", clock.now())
        assert decision.tier == "minute"
        assert decision.retry_after == 60

    def test_different_keys_independent(self, limiter, clock):
        """Test that different identities have independent limits."""
        for _ in range(10):
            limiter.check_and_record("key1", clock.now())

        assert limiter.check_and_record("key1", clock.now()).allowed is False
        assert limiter.check_and_record("key2", clock.now()).allowed is True

    def test_check_does_not_record(self, limiter, clock):
        """Test that a peek leaves no trace in the ledger."""
        assert limiter.check("client", clock.now()).allowed is True
        assert limiter.active_identity_count() == 0

        limiter.check_and_record("client", clock.now())
        limiter.check("client", clock.now())
        assert limiter.usage("client", clock.now())["minute"] == 1

    def test_check_reports_full_tier(self, limiter, clock):
        for _ in range(10):
            limiter.check_and_record("client", clock.now())

        decision = limiter.check("client", clock.now())
        assert decision.allowed is False
        assert decision.tier == "minute"

    def test_concurrent_callers_cannot_exceed_limit(self, clock):
        """Test that parallel threads for one identity never over-admit."""
        limiter = SlidingWindowRateLimiter(tiers=[
            RateLimitTier(name="minute", window_seconds=60, max_requests=25),
        ])
        results = []
        results_lock = threading.Lock()

        def worker():
            for _ in range(20):
                decision = limiter.check_and_record("shared", clock.now())
                with results_lock:
                    results.append(decision.allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(results) == 25
        assert len(results) == 160

    def test_rejects_invalid_configuration(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(tiers=[])
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(tiers=[DEFAULT_TIERS[0], DEFAULT_TIERS[0]])
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(tiers=DEFAULT_TIERS, sweep_interval=0)

    def test_get_tier(self, limiter):
        assert limiter.get_tier("hour") == DEFAULT_TIERS[1]
        assert limiter.get_tier("week") is None


class TestSweep:
    """Tests for idle identity cleanup."""

    def test_sweep_removes_idle_identities(self):
        clock = ManualClock()
        limiter = SlidingWindowRateLimiter(tiers=[
            RateLimitTier(name="minute", window_seconds=60, max_requests=5),
            RateLimitTier(name="hour", window_seconds=3600, max_requests=10),
        ])
        limiter.check_and_record("idle", clock.now())
        clock.advance(3000)
        limiter.check_and_record("active", clock.now())
        clock.advance(600)

        removed = limiter.sweep(clock.now())

        assert removed == 1
        assert limiter.active_identity_count() == 1
        assert limiter.usage("active", clock.now()) == {"minute": 0, "hour": 1}

    def test_sweep_keeps_identity_with_long_window_entries(self):
        clock = ManualClock()
        limiter = SlidingWindowRateLimiter(tiers=DEFAULT_TIERS)
        limiter.check_and_record("client", clock.now())
        clock.advance(120)

        assert limiter.sweep(clock.now()) == 0
        assert limiter.active_identity_count() == 1

    def test_periodic_sweep_runs_on_cadence(self):
        """Test that every Nth decision triggers a sweep."""
        clock = ManualClock()
        limiter = SlidingWindowRateLimiter(
            tiers=[RateLimitTier(name="minute", window_seconds=60, max_requests=5)],
            sweep_interval=3,
        )
        limiter.check_and_record("a", clock.now())
        limiter.check_and_record("b", clock.now())
        assert limiter.active_identity_count() == 2

        clock.advance(61)
        # Third decision sweeps both stale identities before recording "c".
        limiter.check_and_record("c", clock.now())

        assert limiter.active_identity_count() == 1


class TestGlobalRateLimiter:
    """Tests for the process-wide limiter accessor."""

    @pytest.fixture(autouse=True)
    def reset_limiter(self):
        reset_rate_limiter()
        yield
        reset_rate_limiter()

    def test_singleton(self):
        assert get_rate_limiter() is get_rate_limiter()

    def test_default_tiers_from_settings(self):
        tiers = tiers_from_settings()
        assert [(t.name, t.max_requests, t.window_seconds) for t in tiers] == [
            ("minute", 10, 60),
            ("hour", 50, 3600),
            ("day", 200, 86400),
        ]

    def test_empty_tier_configuration_is_rejected(self):
        with patch("aiproxy.app.services.rate_limit.settings") as mock_settings:
            mock_settings.rate_limit_tiers = []
            mock_settings.rate_limit_sweep_interval = 7
            with pytest.raises(ValueError):
                get_rate_limiter()

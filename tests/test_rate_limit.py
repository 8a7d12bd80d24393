"""Tests for the token bucket manager."""

import threading
import time

import pytest

from tally.app.core.config import Settings
from tally.app.middleware.rate_limit import (
    RateLimitResult,
    TokenBucket,
    TokenBucketManager,
    build_rate_limiters,
)
from tally.app.middleware.rate_limit.manager import create_rate_limiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return TokenBucketManager(capacity=10, refill_rate_per_second=2, clock=clock)


class TestConsume:
    """Admission decisions of consume()."""

    def test_first_use_starts_full(self, clock):
        limiter = TokenBucketManager(capacity=5, refill_rate_per_second=1, clock=clock)
        assert limiter.consume("k", 5) is True
        assert limiter.consume("k", 1) is False

    def test_burst_then_reject(self, limiter):
        results = [limiter.consume("ip-1") for _ in range(11)]
        assert results == [True] * 10 + [False]

    def test_cost_larger_than_capacity_always_rejected(self, limiter, clock):
        assert limiter.consume("k", 11) is False
        clock.advance(3600)
        assert limiter.consume("k", 11) is False
        assert limiter.tokens("k") == 10

    def test_rejection_does_not_debit(self, clock):
        limiter = TokenBucketManager(capacity=3, refill_rate_per_second=1, clock=clock)
        assert limiter.consume("k", 2) is True
        assert limiter.consume("k", 2) is False
        assert limiter.tokens("k") == pytest.approx(1)
        assert limiter.consume("k", 1) is True

    def test_refill_after_elapsed_time(self, clock):
        limiter = TokenBucketManager(capacity=30, refill_rate_per_second=1, clock=clock)
        for _ in range(30):
            assert limiter.consume("user-1") is True
        assert limiter.consume("user-1") is False

        clock.advance(5)
        for _ in range(5):
            assert limiter.consume("user-1") is True
        assert limiter.consume("user-1") is False

    def test_refill_is_clamped_at_capacity(self, limiter, clock):
        assert limiter.consume("k", 10) is True
        clock.advance(1000)
        assert limiter.tokens("k") == 10
        assert limiter.consume("k", 10) is True
        assert limiter.consume("k", 1) is False

    def test_fractional_refill(self, clock):
        limiter = TokenBucketManager(capacity=1, refill_rate_per_second=2, clock=clock)
        assert limiter.consume("k") is True
        clock.advance(0.25)
        assert limiter.consume("k") is False
        clock.advance(0.25)
        assert limiter.consume("k") is True

    def test_fractional_cost(self, clock):
        limiter = TokenBucketManager(capacity=1, refill_rate_per_second=1, clock=clock)
        assert limiter.consume("k", 0.5) is True
        assert limiter.consume("k", 0.5) is True
        assert limiter.consume("k", 0.5) is False

    def test_different_keys_independent(self, limiter):
        for _ in range(10):
            limiter.consume("key1")
        assert limiter.consume("key1") is False
        assert limiter.consume("key2") is True
        assert limiter.tokens("key2") == 9

    def test_clock_going_backwards_adds_nothing(self, limiter, clock):
        limiter.consume("k", 10)
        clock.advance(-5)
        assert limiter.consume("k") is False

    @pytest.mark.parametrize("cost", [0, -1])
    def test_non_positive_cost_rejected(self, limiter, cost):
        with pytest.raises(ValueError):
            limiter.consume("k", cost)

    def test_real_clock_refill(self):
        limiter = TokenBucketManager(capacity=1, refill_rate_per_second=1)
        assert limiter.consume("k") is True
        assert limiter.consume("k") is False
        time.sleep(1.1)
        assert limiter.consume("k") is True

    def test_concurrent_consumers_never_overdraw(self, clock):
        limiter = TokenBucketManager(capacity=100, refill_rate_per_second=1, clock=clock)
        granted = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                if limiter.consume("shared"):
                    with lock:
                        granted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(granted) == 100


class TestScenarios:
    def test_three_per_second_refills_one_token(self, clock):
        limiter = TokenBucketManager(capacity=3, refill_rate_per_second=1, clock=clock)
        assert [limiter.consume("k") for _ in range(4)] == [True, True, True, False]
        clock.advance(1.1)
        assert limiter.consume("k") is True
        assert limiter.consume("k") is False

    def test_partial_refill_after_two_and_a_half_seconds(self, clock):
        limiter = TokenBucketManager(capacity=5, refill_rate_per_second=1, clock=clock)
        assert limiter.consume("k", 5) is True
        assert limiter.consume("k", 3) is False
        clock.advance(2.5)
        assert limiter.consume("k", 3) is False
        assert limiter.consume("k", 2) is True

    def test_balance_clamped_after_idle(self, clock):
        limiter = TokenBucketManager(capacity=2, refill_rate_per_second=1, clock=clock)
        assert limiter.consume("k", 2) is True
        clock.advance(3)
        assert limiter.consume("k", 2) is True
        assert limiter.consume("k", 1) is False


class TestConstruction:
    @pytest.mark.parametrize(
        "capacity, rate",
        [(0, 1), (-1, 1), (1, 0), (1, -0.5)],
    )
    def test_invalid_parameters(self, capacity, rate):
        with pytest.raises(ValueError):
            TokenBucketManager(capacity=capacity, refill_rate_per_second=rate)

    def test_invalid_max_entries(self):
        with pytest.raises(ValueError):
            TokenBucketManager(capacity=1, refill_rate_per_second=1, max_entries=0)

    def test_bucket_state_has_no_implicit_clock(self):
        with pytest.raises(TypeError):
            TokenBucket()
        with pytest.raises(TypeError):
            TokenBucket(tokens=1.0)

    def test_create_rate_limiter(self):
        limiter = create_rate_limiter(30, 1)
        assert limiter.capacity == 30
        assert limiter.refill_rate_per_second == 1

    def test_build_rate_limiters_from_settings(self):
        config = Settings(
            rate_limit_ip_capacity=4,
            rate_limit_ip_refill_per_second=0.5,
            rate_limit_user_capacity=7,
            rate_limit_user_refill_per_second=3,
        )
        limiters = build_rate_limiters(config)
        assert limiters.ip.capacity == 4
        assert limiters.ip.refill_rate_per_second == 0.5
        assert limiters.user.capacity == 7
        assert limiters.user.refill_rate_per_second == 3


class TestCheck:
    """Header metadata reported by check()."""

    def test_allowed_result(self, limiter):
        result = limiter.check("k")
        assert result == RateLimitResult(allowed=True, limit=10, remaining=9)

    def test_rejected_result_has_retry_after(self, limiter):
        for _ in range(10):
            limiter.check("k")
        result = limiter.check("k")
        assert result.allowed is False
        assert result.remaining == 0
        assert result.retry_after == 1

    def test_retry_after_rounds_up(self, clock):
        limiter = TokenBucketManager(capacity=5, refill_rate_per_second=0.5, clock=clock)
        limiter.check("k", 5)
        result = limiter.check("k", 2)
        assert result.allowed is False
        assert result.retry_after == 4

    def test_no_retry_after_when_cost_exceeds_capacity(self, limiter):
        result = limiter.check("k", 50)
        assert result.allowed is False
        assert result.retry_after is None


class TestMemoryBound:
    def test_overflow_keeps_spent_bucket(self, clock):
        limiter = TokenBucketManager(
            capacity=1, refill_rate_per_second=0.001, max_entries=5, clock=clock
        )
        assert limiter.consume("victim") is True
        assert limiter.consume("victim") is False

        for i in range(5):
            assert limiter.consume(f"other-{i}", 0.5) is True

        assert limiter.consume("victim") is False
        assert len(limiter) == 6

    def test_overflow_drops_full_buckets_first(self, clock):
        limiter = TokenBucketManager(
            capacity=2, refill_rate_per_second=1, max_entries=4, clock=clock
        )
        limiter.consume("spent", 2)
        limiter.consume("a", 1)
        limiter.consume("b", 1)
        limiter.consume("c", 1)
        clock.advance(1)

        # a, b and c are full again; spent holds one token
        limiter.consume("new", 1)

        assert len(limiter) == 2
        assert limiter.tokens("spent") == pytest.approx(1)
        assert limiter.consume("spent", 2) is False

    def test_spent_buckets_outgrow_ceiling_until_refilled(self, clock):
        limiter = TokenBucketManager(
            capacity=1, refill_rate_per_second=1, max_entries=10, clock=clock
        )
        for i in range(12):
            assert limiter.consume(f"k{i}") is True

        assert len(limiter) == 12
        assert all(limiter.tokens(f"k{i}") == 0 for i in range(12))

        clock.advance(1)
        limiter.consume("k12")

        assert len(limiter) == 1
        assert limiter.tokens("k12") == 0

    def test_sweep_drops_only_full_buckets(self, limiter, clock):
        limiter.consume("a", 10)
        limiter.consume("b", 1)
        clock.advance(1)

        removed = limiter.sweep()

        assert removed == 1
        assert len(limiter) == 1
        assert limiter.tokens("a") == 2
        assert limiter.consume("b", 10) is True

    def test_reset(self, limiter):
        limiter.consume("a", 10)
        limiter.reset()
        assert len(limiter) == 0
        assert limiter.consume("a", 10) is True

"""In-memory token bucket manager.

Each key owns a bucket holding at most ``capacity`` tokens. Buckets are
created full on first use and refilled lazily on every access, so no timer
or background task is involved.
"""

import math
import threading
import time
from typing import Callable, Generic, Hashable, Optional, TypeVar

from tally.app.middleware.rate_limit.models import RateLimitResult, TokenBucket

K = TypeVar("K", bound=Hashable)


class TokenBucketManager(Generic[K]):
    """Token bucket rate limiter keyed by caller identity.

    ``max_entries`` is a soft ceiling. Once the map reaches it, adding a key
    first drops every bucket that has refilled completely, since a full
    bucket and a missing one behave the same. Buckets still short of
    capacity are never dropped, so the map only outgrows the ceiling while
    more than ``max_entries`` keys have spent tokens within the last
    ``capacity / refill_rate_per_second`` seconds. While above it, the scan
    runs again after every further 20% of growth.
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        capacity: float,
        refill_rate_per_second: float,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the manager.

        Args:
            capacity: Maximum tokens a bucket can hold (burst size)
            refill_rate_per_second: Tokens added per elapsed second
            max_entries: Bucket count at which full buckets start being dropped
            clock: Monotonic time source, in seconds

        Raises:
            ValueError: If capacity, refill rate or max_entries is not positive
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if refill_rate_per_second <= 0:
            raise ValueError("refill_rate_per_second must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self._capacity = float(capacity)
        self._refill_rate = float(refill_rate_per_second)
        self._max_entries = max_entries
        self._scan_at = max_entries
        self._clock = clock
        self._buckets: dict[K, TokenBucket] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def refill_rate_per_second(self) -> float:
        return self._refill_rate

    def __len__(self) -> int:
        return len(self._buckets)

    def _bucket_for(self, key: K, now: float) -> TokenBucket:
        # Caller holds the lock.
        bucket = self._buckets.get(key)
        if bucket is None:
            self._make_room(now)
            bucket = TokenBucket(tokens=self._capacity, last_refill=now)
            self._buckets[key] = bucket

        elapsed = max(0.0, now - bucket.last_refill)
        bucket.tokens = min(self._capacity, bucket.tokens + elapsed * self._refill_rate)
        bucket.last_refill = now
        return bucket

    def _is_full(self, bucket: TokenBucket, now: float) -> bool:
        elapsed = max(0.0, now - bucket.last_refill)
        return bucket.tokens + elapsed * self._refill_rate >= self._capacity

    def _drop_full_buckets(self, now: float) -> int:
        # Caller holds the lock.
        full = [key for key, bucket in self._buckets.items() if self._is_full(bucket, now)]
        for key in full:
            del self._buckets[key]
        return len(full)

    def _make_room(self, now: float) -> None:
        # Caller holds the lock and is about to add one bucket.
        if len(self._buckets) < self._scan_at:
            return
        self._drop_full_buckets(now)
        self._scan_at = max(
            self._max_entries,
            len(self._buckets) + max(1, int(self._max_entries * 0.2)),
        )

    def _take(self, key: K, cost: float) -> tuple[bool, float]:
        if cost <= 0:
            raise ValueError("cost must be positive")
        with self._lock:
            bucket = self._bucket_for(key, self._clock())
            if bucket.tokens >= cost:
                bucket.tokens -= cost
                return True, bucket.tokens
            return False, bucket.tokens

    def consume(self, key: K, cost: float = 1) -> bool:
        """Try to take ``cost`` tokens from the bucket of ``key``.

        Returns:
            True if the tokens were debited, False if the bucket holds fewer
            than ``cost`` tokens (the balance is then left untouched).
        """
        allowed, _ = self._take(key, cost)
        return allowed

    def check(self, key: K, cost: float = 1) -> RateLimitResult:
        """Consume like :meth:`consume` and report header-friendly metadata."""
        allowed, tokens = self._take(key, cost)
        if allowed:
            return RateLimitResult(
                allowed=True,
                limit=self._capacity,
                remaining=int(tokens),
            )
        retry_after = None
        if cost <= self._capacity:
            retry_after = max(1, math.ceil((cost - tokens) / self._refill_rate))
        return RateLimitResult(
            allowed=False,
            limit=self._capacity,
            remaining=int(tokens),
            retry_after=retry_after,
        )

    def tokens(self, key: K) -> float:
        """Return the refilled balance of ``key`` without consuming anything."""
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return self._capacity
            elapsed = max(0.0, self._clock() - bucket.last_refill)
            return min(self._capacity, bucket.tokens + elapsed * self._refill_rate)

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop buckets that have refilled completely.

        A full bucket behaves exactly like a missing one, so removing it has
        no observable effect on later calls.

        Returns:
            Number of buckets removed
        """
        with self._lock:
            if now is None:
                now = self._clock()
            return self._drop_full_buckets(now)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._scan_at = self._max_entries


def create_rate_limiter(
    capacity: float,
    refill_rate_per_second: float,
    max_entries: int = TokenBucketManager.DEFAULT_MAX_ENTRIES,
) -> TokenBucketManager:
    """Create a token bucket manager bound to ``capacity`` and refill rate."""
    return TokenBucketManager(
        capacity=capacity,
        refill_rate_per_second=refill_rate_per_second,
        max_entries=max_entries,
    )

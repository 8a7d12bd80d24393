"""Rate limiting data models.

This module contains dataclasses for token bucket state and check results.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: float
    remaining: int
    retry_after: Optional[int] = None


@dataclass
class TokenBucket:
    """Token bucket state for a single key.

    ``last_refill`` is a reading of the owning manager's clock.
    """
    tokens: float
    last_refill: float

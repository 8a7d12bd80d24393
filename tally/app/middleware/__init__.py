"""Middleware package for Tally."""

from tally.app.middleware.auth import require_admin, require_user
from tally.app.middleware.rate_limit import (
    RateLimitMiddleware,
    enforce_user_rate_limit,
)
from tally.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "require_admin",
    "require_user",
    "RateLimitMiddleware",
    "enforce_user_rate_limit",
    "RequestIdMiddleware",
    "get_request_id",
]

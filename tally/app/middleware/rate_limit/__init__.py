"""Rate limiting for Tally.

Two token bucket managers protect the application: one keyed by client IP
address and applied to every request by ``RateLimitMiddleware``, and one
keyed by authenticated user and applied to mutating endpoints through the
``enforce_user_rate_limit`` dependency. Both are built once per application
in ``create_app`` and live on ``app.state.rate_limiters``.
"""

import hashlib
from dataclasses import dataclass
from typing import Annotated, Iterable, Optional

from fastapi import Depends, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tally.app.core.config import Settings, settings
from tally.app.core.logging import get_log_context, get_logger
from tally.app.db.models import User
from tally.app.exceptions import BadRequestError, RateLimitExceededError, TallyException
from tally.app.middleware.auth import require_user
from tally.app.middleware.rate_limit.manager import (
    TokenBucketManager,
    create_rate_limiter,
)
from tally.app.middleware.rate_limit.models import RateLimitResult, TokenBucket

logger = get_logger(__name__)

__all__ = [
    "RateLimitResult",
    "TokenBucket",
    "TokenBucketManager",
    "create_rate_limiter",
    "RateLimiters",
    "build_rate_limiters",
    "get_rate_limiters",
    "get_client_ip",
    "RateLimitMiddleware",
    "enforce_user_rate_limit",
    "UserRateLimitDep",
]


@dataclass
class RateLimiters:
    """The token bucket managers of one application instance."""
    ip: TokenBucketManager[str]
    user: TokenBucketManager[str]


def build_rate_limiters(config: Settings = settings) -> RateLimiters:
    return RateLimiters(
        ip=create_rate_limiter(
            config.rate_limit_ip_capacity,
            config.rate_limit_ip_refill_per_second,
            max_entries=config.rate_limit_max_entries,
        ),
        user=create_rate_limiter(
            config.rate_limit_user_capacity,
            config.rate_limit_user_refill_per_second,
            max_entries=config.rate_limit_max_entries,
        ),
    )


def get_rate_limiters(request: Request) -> RateLimiters:
    return request.app.state.rate_limiters


def get_client_ip(request: Request) -> str:
    """Resolve the client IP address of a request.

    The first X-Forwarded-For hop is used only when ``trust_forwarded_for``
    is enabled; otherwise the peer address is authoritative.

    Raises:
        BadRequestError: If no address can be determined
    """
    ip: Optional[str] = None
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            ip = forwarded.split(",")[0].strip() or None
    if ip is None and request.client is not None:
        ip = request.client.host or None
    if not ip:
        raise BadRequestError("Suspicious request without IP address")
    return ip


def _hash_key(value: str) -> str:
    # Keys hold IPs and user ids; keep them out of memory dumps and logs.
    return hashlib.sha256(value.encode()).hexdigest()[:32]


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(int(result.limit)),
        "X-RateLimit-Remaining": str(result.remaining),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after or 1)
    return headers


def _error_response(
    request: Request,
    exc: TallyException,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    content = exc.to_response()
    content["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing the per-IP token bucket on every request.

    Rejected requests never reach the route handler, so no side effect
    happens before the 429 answer.
    """

    def __init__(self, app, exempt_paths: Iterable[str] = ("/health",), cost: float = 1):
        super().__init__(app)
        self.exempt_paths = frozenset(exempt_paths)
        self.cost = cost

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        if settings.disable_rate_limit or request.url.path in self.exempt_paths:
            return await call_next(request)

        try:
            ip = get_client_ip(request)
        except BadRequestError as exc:
            return _error_response(request, exc)

        key = f"ip:{_hash_key(ip)}"
        result = get_rate_limiters(request).ip.check(key, self.cost)

        if not result.allowed:
            logger.warning(
                "Rate limit exceeded",
                extra=get_log_context(
                    rate_limit_key=key,
                    path=request.url.path,
                    method=request.method,
                ),
            )
            return _error_response(
                request,
                RateLimitExceededError(retry_after=result.retry_after),
                headers=_rate_limit_headers(result),
            )

        response = await call_next(request)
        response.headers.update(_rate_limit_headers(result))
        return response


async def enforce_user_rate_limit(
    request: Request,
    user: Annotated[User, Depends(require_user)],
) -> User:
    """Dependency admitting one operation for the authenticated user.

    Raises:
        RateLimitExceededError: If the user's bucket is empty
    """
    if settings.disable_rate_limit:
        return user

    key = f"user:{_hash_key(user.id)}"
    result = get_rate_limiters(request).user.check(key, 1)
    if not result.allowed:
        logger.warning(
            "User rate limit exceeded",
            extra=get_log_context(rate_limit_key=key, path=request.url.path),
        )
        raise RateLimitExceededError(retry_after=result.retry_after)
    return user


UserRateLimitDep = Annotated[User, Depends(enforce_user_rate_limit)]

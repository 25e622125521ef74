"""
In-memory rate limiting for checkout.

Uses a simple sliding-window counter per (client IP, route) key. Counters
live in one process; a multi-instance deployment needs a shared limiter
in front of the service.
"""
import time
import logging
from collections import defaultdict

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Simple in-memory sliding-window rate limiter.

    Tracks request timestamps per key.
    """

    def __init__(self, clock=time.monotonic):
        # {key: [timestamp1, timestamp2, ...]}
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._clock = clock

    def _cleanup(self, key: str, window_seconds: int):
        """Remove expired timestamps from the window."""
        cutoff = self._clock() - window_seconds
        self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """
        Record a request for key if it fits in the window.

        Returns:
            True if allowed, False if rate-limited
        """
        self._cleanup(key, window_seconds)

        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        """Get the number of remaining requests in the current window."""
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests[key]))

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
_limiter = RateLimiter()


def get_limiter() -> RateLimiter:
    return _limiter


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory for rate limiting.

    Usage:
        @router.post("/create-charge")
        async def create_charge(..., _=Depends(rate_limit(10, 60))):
            ...
    """
    async def _check_rate_limit(request: Request):
        client_ip = request.client.host if request.client else "unknown"
        route_path = request.url.path
        key = f"{client_ip}:{route_path}"

        if not _limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {route_path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Rate limit exceeded. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                details={"retry_after": window_seconds, "limit": max_requests},
            )

    return _check_rate_limit

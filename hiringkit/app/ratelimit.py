"""Rate limiting utilities."""

from datetime import datetime

import redis

from hiringkit.app.config import Settings
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import RetryAfter


def make_rate_limit_key(ctx: RequestContext | None, bucket: str, client_ip: str = "unknown") -> str:
    """Create rate limit key from context and bucket.

    Anonymous callers share a key per client IP.

    Args:
        ctx: Request context, or None for anonymous callers
        bucket: Bucket name (e.g., "generation", "checkout")
        client_ip: Client address used for anonymous callers

    Returns:
        Rate limit key
    """
    if ctx is None:
        return f"anon:{client_ip}:{bucket}"
    return f"{ctx.org_id}:{ctx.user_id}:{bucket}"


def quota_for(ctx: RequestContext | None, settings: Settings) -> int:
    """Requests allowed per window for the caller's role."""
    if ctx is None:
        return settings.anonymous_requests_per_window
    if ctx.is_admin:
        return settings.admin_requests_per_window
    return settings.authenticated_requests_per_window


class RedisRateLimiter:
    """Redis-based rate limiter using INCR + EXPIRE pattern."""

    def __init__(self, redis_client: redis.Redis, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Redis client
            window_seconds: Window size in seconds (default 60)
        """
        self._redis = redis_client
        self._window_seconds = window_seconds

    def check_quota(self, key: str, now: datetime, max_requests: int) -> RetryAfter | None:
        """Check if quota is available.

        Uses Redis INCR + EXPIRE for atomic counting in window-aligned keys.
        """
        window_start = int(now.timestamp() / self._window_seconds) * self._window_seconds
        redis_key = f"ratelimit:{key}:{window_start}"

        count = self._redis.incr(redis_key)
        if count == 1:
            self._redis.expire(redis_key, self._window_seconds)

        if count > max_requests:
            ttl = self._redis.ttl(redis_key)
            return RetryAfter(seconds=max(1, ttl))

        return None

"""Rate limiting middleware."""

from datetime import datetime

from hiringkit.app.config import Settings
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import RateLimiter
from hiringkit.app.models.common import utc_now
from hiringkit.app.ratelimit import make_rate_limit_key, quota_for


class RateLimitMiddleware:
    """Maps request paths to buckets and enforces per-role quotas."""

    def __init__(
        self, limiter: RateLimiter, bucket_map: dict[str, str], settings: Settings
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            limiter: Rate limiter implementation
            bucket_map: Mapping from path fragments to bucket names
            settings: Source of per-role quotas
        """
        self._limiter = limiter
        self._bucket_map = bucket_map
        self._settings = settings

    def check_rate_limit(
        self,
        path: str,
        ctx: RequestContext | None,
        client_ip: str = "unknown",
        now: datetime | None = None,
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        bucket = self._get_bucket(path)
        if bucket is None:
            return (True, 0)

        key = make_rate_limit_key(ctx, bucket, client_ip)
        retry_after = self._limiter.check_quota(
            key, now or utc_now(), quota_for(ctx, self._settings)
        )

        if retry_after is None:
            return (True, 0)

        return (False, retry_after.seconds)

    def _get_bucket(self, path: str) -> str | None:
        for pattern, bucket in self._bucket_map.items():
            if pattern in path:
                return bucket
        return None


def create_default_bucket_map() -> dict[str, str]:
    """Path fragments of expensive or payment endpoints mapped to buckets."""
    return {
        "/kits/generate": "generation",
        "/regenerate": "generation",
        "/checkout": "checkout",
        "/export": "export",
    }

import logging

import redis
from redis.exceptions import ConnectionError, TimeoutError

from callvoucher.core.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window counter in Redis. Fails open when Redis is unreachable."""

    def __init__(self, prefix: str, limit: int, window_seconds: int, client: redis.Redis | None = None):
        self.prefix = prefix
        self.limit = limit
        self.window_seconds = window_seconds
        self.client = client or redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )

    def hit(self, key: str) -> bool:
        redis_key = f"{self.prefix}:{key}"
        try:
            count = self.client.incr(redis_key)
            if count == 1:
                self.client.expire(redis_key, self.window_seconds)
            return count <= self.limit
        except (ConnectionError, TimeoutError):
            logger.warning("Rate limiter %s unavailable; allowing request", self.prefix)
            return True

    def reset(self, key: str) -> None:
        redis_key = f"{self.prefix}:{key}"
        try:
            self.client.delete(redis_key)
        except (ConnectionError, TimeoutError):
            return


validate_limiter = RateLimiter(
    "voucher-validate", settings.validate_rate_limit, settings.validate_rate_window_seconds
)
login_limiter = RateLimiter("login", settings.login_rate_limit, settings.login_rate_window_seconds)

import redis

from ...application.ports.rate_limiter import RateLimiter


class RedisRateLimiter(RateLimiter):
    """Fixed-window limiter shared by every worker through Redis."""

    def __init__(self, url: str, prefix: str = "rl:", client=None) -> None:
        self.client = client or redis.Redis.from_url(url)
        self.prefix = prefix

    def _key(self, key: str, window_seconds: int) -> str:
        return f"{self.prefix}{key}:{window_seconds}"

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        rk = self._key(key, window_seconds)
        pipe = self.client.pipeline()
        pipe.incr(rk, 1)
        pipe.ttl(rk)
        count, ttl = pipe.execute()
        # The window starts with the first hit; later hits must not extend it
        if int(ttl) < 0:
            self.client.expire(rk, window_seconds)
        return int(count) <= int(max_requests)

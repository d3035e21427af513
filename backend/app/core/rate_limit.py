import secrets
import threading
import time
from collections import deque

from redis import Redis
from redis.exceptions import RedisError

# Sliding window over a sorted set; returns 1 when the caller is over the limit.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call("ZREMRANGEBYSCORE", key, 0, now_ms - window_ms)
local blocked = 0
if redis.call("ZCARD", key) >= limit then
  blocked = 1
else
  redis.call("ZADD", key, now_ms, ARGV[4])
end
redis.call("PEXPIRE", key, window_ms + 1000)
return blocked
"""


class RateLimiter:
    def __init__(self, redis_url: str | None = None, key_prefix: str = "financerecords") -> None:
        self._events: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis: Redis | None = None
        if redis_url:
            try:
                client = Redis.from_url(redis_url)
                client.ping()
                self._redis = client
            except RedisError:
                self._redis = None

    def _check_redis(self, key: str, limit: int, window_seconds: int) -> bool | None:
        now_ms = int(time.time() * 1000)
        try:
            blocked = self._redis.eval(
                _SLIDING_WINDOW_LUA,
                1,
                f"{self._key_prefix}:ratelimit:{key}",
                now_ms,
                window_seconds * 1000,
                limit,
                f"{now_ms}-{secrets.token_hex(4)}",
            )
        except RedisError:
            return None
        return int(blocked or 0) == 1

    def _check_local(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.monotonic()
        with self._lock:
            events = self._events.setdefault(key, deque())
            while events and events[0] <= now - window_seconds:
                events.popleft()
            if len(events) >= limit:
                return True
            events.append(now)
            return False

    def exceeded(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record one hit for ``key`` and report whether it is over ``limit`` per window."""
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))
        if self._redis is not None:
            result = self._check_redis(key, limit, window_seconds)
            if result is not None:
                return result
        return self._check_local(key, limit, window_seconds)

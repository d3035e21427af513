import json
import threading
import time
from typing import Any

from redis import Redis
from redis.exceptions import RedisError


class TimedCache:
    """TTL cache for JSON-serializable payloads.

    Redis is used when reachable so invalidations are visible to every worker;
    the in-process map is always kept as well and answers when Redis is down.
    """

    def __init__(self, redis_url: str | None = None, key_prefix: str = "financerecords") -> None:
        self._local: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis: Redis | None = None
        if redis_url:
            try:
                client = Redis.from_url(redis_url, decode_responses=True)
                client.ping()
                self._redis = client
            except RedisError:
                self._redis = None

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:cache:{key}"

    def get(self, key: str) -> Any | None:
        if self._redis is not None:
            try:
                raw = self._redis.get(self._redis_key(key))
                return None if raw is None else json.loads(raw)
            except (RedisError, ValueError):
                pass

        with self._lock:
            entry = self._local.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if time.monotonic() > expires_at:
                del self._local[key]
                return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: int) -> None:
        ttl = max(1, int(ttl))
        raw = json.dumps(value, separators=(",", ":"))
        if self._redis is not None:
            try:
                self._redis.setex(self._redis_key(key), ttl, raw)
            except RedisError:
                pass

        with self._lock:
            self._local[key] = (time.monotonic() + ttl, raw)

    def invalidate_prefix(self, prefix: str) -> None:
        if self._redis is not None:
            try:
                keys = list(self._redis.scan_iter(match=self._redis_key(f"{prefix}*"), count=200))
                if keys:
                    self._redis.delete(*keys)
            except RedisError:
                pass

        with self._lock:
            for key in [k for k in self._local if k.startswith(prefix)]:
                del self._local[key]

"""Redis-backed key-value store shared by every server replica."""

import structlog
from redis import Redis
from redis.exceptions import RedisError

from notifications.store.kv_port import KeyValueStore

logger = structlog.get_logger(__name__)

# INCR and EXPIRE-on-first-hit in one round trip
_INCREMENT_WINDOW = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return current
"""


class RedisStore(KeyValueStore):
    def __init__(self, client: Redis):
        self._client = client
        self._increment_window = client.register_script(_INCREMENT_WINDOW)

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(Redis.from_url(url, decode_responses=True))

    def increment_window(self, key: str, window_seconds: int) -> int:
        return int(self._increment_window(keys=[key], args=[window_seconds]))

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._client.set(key, value, ex=ttl_seconds)

    def delete(self, *keys: str) -> None:
        if keys:
            self._client.delete(*keys)

    def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return int(self._client.hincrby(key, field, amount))

    def hgetall(self, key: str) -> dict[str, int]:
        return {name: int(value) for name, value in self._client.hgetall(key).items()}

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed", error=str(exc))
            return False

    def close(self) -> None:
        self._client.close()

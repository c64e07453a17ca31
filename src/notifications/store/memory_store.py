"""In-process key-value store with TTLs, guarded by a single lock."""

import threading
import time

from notifications.store.kv_port import KeyValueStore


class MemoryStore(KeyValueStore):
    """Store that keeps values in a dict for single-process deployments and tests."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._values: dict[str, str] = {}
        self._hashes: dict[str, dict[str, int]] = {}
        self._expires_at: dict[str, float] = {}

    def _expire(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and deadline <= self._clock():
            self._values.pop(key, None)
            self._hashes.pop(key, None)
            self._expires_at.pop(key, None)

    def increment_window(self, key: str, window_seconds: int) -> int:
        with self._lock:
            self._expire(key)
            value = int(self._values.get(key, 0)) + 1
            self._values[key] = str(value)
            if value == 1:
                self._expires_at[key] = self._clock() + window_seconds
            return value

    def get(self, key: str) -> str | None:
        with self._lock:
            self._expire(key)
            return self._values.get(key)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._values[key] = value
            if ttl_seconds:
                self._expires_at[key] = self._clock() + ttl_seconds
            else:
                self._expires_at.pop(key, None)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._values.pop(key, None)
                self._hashes.pop(key, None)
                self._expires_at.pop(key, None)

    def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        with self._lock:
            self._expire(key)
            bucket = self._hashes.setdefault(key, {})
            bucket[field] = bucket.get(field, 0) + amount
            return bucket[field]

    def hgetall(self, key: str) -> dict[str, int]:
        with self._lock:
            self._expire(key)
            return dict(self._hashes.get(key, {}))

    def ping(self) -> bool:
        return True

    def flush(self) -> None:
        """Drop every key (useful between tests)."""
        with self._lock:
            self._values.clear()
            self._hashes.clear()
            self._expires_at.clear()

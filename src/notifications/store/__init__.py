"""Shared expiring key-value store used for counters and caches.

Rate-limit windows, cached unread counts, cached preferences and the
analytics counters live here so that every server replica sees the same
values. ``RedisStore`` is used in deployments; ``MemoryStore`` serves a
single process (development and tests).

Projectors and event handlers have no constructor to inject into, so the
orchestrator binds its store here and they look it up with
``get_shared_store``.
"""

from notifications.store.kv_port import KeyValueStore
from notifications.store.memory_store import MemoryStore

_shared_store: KeyValueStore | None = None


def build_store(redis_url: str | None = None) -> KeyValueStore:
    """Return a Redis-backed store for ``redis_url``, or an in-process one."""
    if redis_url:
        from notifications.store.redis_store import RedisStore

        return RedisStore.from_url(redis_url)
    return MemoryStore()


def bind_shared_store(store: KeyValueStore) -> None:
    global _shared_store
    _shared_store = store


def get_shared_store() -> KeyValueStore:
    """Return the bound store (singleton), falling back to an in-process one."""
    global _shared_store
    if _shared_store is None:
        _shared_store = MemoryStore()
    return _shared_store


def reset_shared_store() -> None:
    """Forget the bound store (useful for testing)."""
    global _shared_store
    _shared_store = None


__all__ = ["KeyValueStore", "MemoryStore", "bind_shared_store", "build_store", "get_shared_store", "reset_shared_store"]

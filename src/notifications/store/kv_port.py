"""Key-value store port: abstract interface for the shared expiring store."""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Abstract interface for counters and caches shared across replicas."""

    @abstractmethod
    def increment_window(self, key: str, window_seconds: int) -> int:
        """Atomically increment ``key`` and return the new value.

        The TTL is set to ``window_seconds`` only when the increment created
        the key, so the window is fixed from the first hit.
        """
        ...

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    @abstractmethod
    def delete(self, *keys: str) -> None: ...

    @abstractmethod
    def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        """Atomically increment one field of a hash and return its new value."""
        ...

    @abstractmethod
    def hgetall(self, key: str) -> dict[str, int]: ...

    @abstractmethod
    def ping(self) -> bool: ...

    def close(self) -> None:  # noqa: B027
        """Release connections. No-op by default."""

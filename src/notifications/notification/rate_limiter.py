"""Per-user fixed-window rate limiter for notification admission."""

import structlog

from notifications.store.kv_port import KeyValueStore

logger = structlog.get_logger(__name__)

KEY_PREFIX = "notifications:rate_limit:"


class RateLimiter:
    """Allows at most ``limit`` notifications per user per window.

    The window starts with the first notification and is not sliding.
    Every call counts, including ones that are later deferred.
    """

    def __init__(self, store: KeyValueStore, limit: int = 100, window_seconds: int = 3600):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds

    def check_and_increment(self, user_id: str) -> bool:
        count = self.store.increment_window(f"{KEY_PREFIX}{user_id}", self.window_seconds)
        allowed = count <= self.limit
        if not allowed:
            logger.warning(
                "Notification rate limit exceeded",
                user_id=str(user_id),
                count=count,
                limit=self.limit,
            )
        return allowed

    def reset(self, user_id: str) -> None:
        """Drop the user's current window."""
        self.store.delete(f"{KEY_PREFIX}{user_id}")

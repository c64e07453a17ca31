"""Runtime settings for the notifications service.

Protean itself (database, broker, event store) is configured through
``domain.toml``. Everything the orchestrator needs at runtime is read from
``NOTIFICATIONS_*`` environment variables, e.g. ``NOTIFICATIONS_REDIS_URL``
or ``NOTIFICATIONS_RATE_LIMIT``.
"""

from functools import lru_cache
from uuid import uuid4

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from notifications.notification.notification import NotificationCategory


class NotificationSettings(BaseSettings):
    """Orchestrator configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="NOTIFICATIONS_", env_file=".env", extra="ignore")

    redis_url: str | None = Field(
        default=None,
        description="Redis URL for counters, caches and fan-out. In-process fallbacks are used when unset.",
    )
    instance_id: str = Field(default_factory=lambda: f"instance-{uuid4().hex[:8]}")

    # Admission
    rate_limit: int = Field(default=100, gt=0)
    rate_limit_window_seconds: int = Field(default=3600, gt=0)

    # Caches
    unread_count_ttl_seconds: int = Field(default=60, gt=0)
    preference_cache_ttl_seconds: int = Field(default=3600, gt=0)

    # Retry
    max_delivery_attempts: int = Field(default=3, ge=1)
    retry_delays_seconds: list[int] = Field(default_factory=lambda: [60, 300, 900])

    # Preferences
    fallback_category: NotificationCategory | None = NotificationCategory.EVENT_REMINDER
    requeue_after_quiet_hours: bool = True

    # Workers
    dispatch_workers: int = Field(default=4, ge=1)
    scheduler_interval_seconds: int = Field(default=60, gt=0)

    @field_validator("retry_delays_seconds")
    @classmethod
    def _delays_must_be_positive(cls, value: list[int]) -> list[int]:
        if not value or any(delay <= 0 for delay in value):
            raise ValueError("retry_delays_seconds must be a non-empty list of positive integers")
        return value

    def retry_delay_for(self, attempt_count: int) -> int:
        """Backoff before the next attempt, given how many attempts were made."""
        index = min(max(attempt_count, 1), len(self.retry_delays_seconds)) - 1
        return self.retry_delays_seconds[index]


@lru_cache
def get_settings() -> NotificationSettings:
    return NotificationSettings()

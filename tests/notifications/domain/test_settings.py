"""Tests for NotificationSettings loaded from the environment."""

import pytest
from notifications.config import NotificationSettings
from notifications.notification.notification import NotificationCategory
from pydantic import ValidationError as SettingsError


class TestNotificationSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("NOTIFICATIONS_REDIS_URL", raising=False)
        settings = NotificationSettings()
        assert settings.redis_url is None
        assert settings.rate_limit == 100
        assert settings.rate_limit_window_seconds == 3600
        assert settings.unread_count_ttl_seconds == 60
        assert settings.max_delivery_attempts == 3
        assert settings.retry_delays_seconds == [60, 300, 900]
        assert settings.fallback_category == NotificationCategory.EVENT_REMINDER
        assert settings.requeue_after_quiet_hours is True

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_RATE_LIMIT", "5")
        monkeypatch.setenv("NOTIFICATIONS_FALLBACK_CATEGORY", "SystemAlert")
        monkeypatch.setenv("NOTIFICATIONS_RETRY_DELAYS_SECONDS", "[10, 20]")
        settings = NotificationSettings()
        assert settings.rate_limit == 5
        assert settings.fallback_category == NotificationCategory.SYSTEM_ALERT
        assert settings.retry_delays_seconds == [10, 20]

    def test_instance_ids_are_unique_by_default(self):
        assert NotificationSettings().instance_id != NotificationSettings().instance_id

    @pytest.mark.parametrize("delays", [[], [60, 0]])
    def test_retry_delays_must_be_positive(self, delays):
        with pytest.raises(SettingsError):
            NotificationSettings(retry_delays_seconds=delays)

    @pytest.mark.parametrize("attempt_count, delay", [(0, 60), (1, 60), (2, 300), (3, 900), (7, 900)])
    def test_retry_delay_for(self, attempt_count, delay):
        assert NotificationSettings().retry_delay_for(attempt_count) == delay

"""Preference resolution: effective channels and quiet-hours checks.

Pure functions over a ``NotificationPreference``; no repository access.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from notifications.delivery.delivery import DeliveryChannel
from notifications.notification.notification import NotificationCategory
from notifications.preference.preference import (
    DEFAULT_CATEGORY_CHANNELS,
    DEFAULT_CHANNELS,
    ChannelToggles,
    NotificationPreference,
    QuietHours,
)


@dataclass
class Resolution:
    """Outcome of resolving a category against a user's preferences.

    ``channels`` is empty exactly when the user opted out; ``reason`` then
    says why.
    """

    channels: set[DeliveryChannel] = field(default_factory=set)
    reason: str | None = None

    @property
    def opted_out(self) -> bool:
        return not self.channels


def resolve_channels(
    preferences: NotificationPreference,
    category,
    fallback_category: NotificationCategory | None = NotificationCategory.EVENT_REMINDER,
) -> Resolution:
    """Resolve the channels a notification of ``category`` goes out on.

    Global opt-out and disabled notifications win over every category
    setting. Missing category toggles fall back to ``fallback_category``,
    then to the default channels. If nothing is enabled the notification
    still reaches the in-app inbox.
    """
    category = NotificationCategory(category)

    if preferences.unsubscribed_from_all:
        return Resolution(reason="user unsubscribed from all notifications")
    if not preferences.notifications_enabled:
        return Resolution(reason="user disabled notifications")
    if not preferences.is_subscribed_to(category):
        return Resolution(reason=f"user unsubscribed from {category.value}")

    toggles = preferences.toggles_for(category)
    if toggles is None and fallback_category is not None:
        toggles = preferences.toggles_for(fallback_category)
    if toggles is None:
        toggles = preferences.default_channels or ChannelToggles(**DEFAULT_CHANNELS)

    channels = toggles.enabled_channels()
    if not channels:
        channels = {DeliveryChannel.IN_APP}
    return Resolution(channels=channels)


def default_channels_for(category) -> set[DeliveryChannel]:
    """Channels a user with untouched preferences would get."""
    return ChannelToggles(**DEFAULT_CATEGORY_CHANNELS[NotificationCategory(category)]).enabled_channels()


def _local_now(quiet_hours: QuietHours, now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(ZoneInfo(quiet_hours.timezone or "UTC"))


def _window_configured(quiet_hours: QuietHours | None) -> bool:
    return bool(quiet_hours and quiet_hours.enabled and quiet_hours.start and quiet_hours.end)


def is_quiet_hours(quiet_hours: QuietHours | None, now: datetime | None = None) -> bool:
    """True when ``now`` falls inside the user's do-not-disturb window.

    Same-day windows are ``start <= now < end``. Windows with
    ``start > end`` cross midnight: ``now >= start or now < end``. A window
    with ``start == end`` is empty.
    """
    if not _window_configured(quiet_hours):
        return False

    current = _local_now(quiet_hours, now or datetime.now(UTC)).strftime("%H:%M")
    start, end = quiet_hours.start, quiet_hours.end
    if start <= end:
        return start <= current < end
    return current >= start or current < end


def quiet_hours_end(quiet_hours: QuietHours, now: datetime | None = None) -> datetime | None:
    """UTC instant at which the current quiet window ends, or None if not quiet."""
    now = now or datetime.now(UTC)
    if not is_quiet_hours(quiet_hours, now):
        return None

    local_now = _local_now(quiet_hours, now)
    end_hour, end_minute = (int(part) for part in quiet_hours.end.split(":"))
    end = local_now.replace(hour=end_hour, minute=end_minute, second=0, microsecond=0)
    if end <= local_now:
        end += timedelta(days=1)
    return end.astimezone(UTC)

"""Tests for channel resolution and quiet-hours evaluation."""

from datetime import UTC, datetime

import pytest
from notifications.delivery.delivery import DeliveryChannel
from notifications.notification.notification import NotificationCategory
from notifications.preference.preference import ChannelToggles, NotificationPreference, QuietHours
from notifications.preference.resolver import (
    default_channels_for,
    is_quiet_hours,
    quiet_hours_end,
    resolve_channels,
)


def _prefs():
    pref = NotificationPreference.create_default(user_id="user-001")
    pref._events.clear()
    return pref


def _window(start="22:00", end="08:00", timezone="UTC", enabled=True):
    return QuietHours(enabled=enabled, start=start, end=end, timezone=timezone)


# ---------------------------------------------------------------
# resolve_channels
# ---------------------------------------------------------------
class TestResolveChannels:
    def test_category_toggles_decide_the_channels(self):
        resolution = resolve_channels(_prefs(), NotificationCategory.REVIEW)
        assert resolution.channels == {DeliveryChannel.EMAIL, DeliveryChannel.IN_APP}
        assert resolution.opted_out is False

    @pytest.mark.parametrize("category", list(NotificationCategory))
    def test_global_opt_out_wins_over_every_category(self, category):
        pref = _prefs()
        pref.unsubscribe_from_all()
        resolution = resolve_channels(pref, category)
        assert resolution.channels == set()
        assert resolution.opted_out is True

    def test_disabled_notifications_resolve_nothing(self):
        pref = _prefs()
        pref.notifications_enabled = False
        resolution = resolve_channels(pref, NotificationCategory.SYSTEM_ALERT)
        assert resolution.channels == set()
        assert resolution.reason == "user disabled notifications"

    def test_unsubscribed_category_resolves_nothing(self):
        pref = _prefs()
        pref.unsubscribe_from(NotificationCategory.MARKETING)
        resolution = resolve_channels(pref, NotificationCategory.MARKETING)
        assert resolution.channels == set()
        assert resolution.reason == "user unsubscribed from Marketing"

    def test_missing_category_toggles_fall_back_to_fallback_category(self):
        pref = _prefs()
        pref.follower = None
        resolution = resolve_channels(pref, NotificationCategory.FOLLOWER, NotificationCategory.SYSTEM_ALERT)
        assert resolution.channels == set(DeliveryChannel)

    def test_without_fallback_category_default_channels_apply(self):
        pref = _prefs()
        pref.follower = None
        pref.default_channels = ChannelToggles(email=False, push=True, in_app=False, sms=False)
        resolution = resolve_channels(pref, NotificationCategory.FOLLOWER, fallback_category=None)
        assert resolution.channels == {DeliveryChannel.PUSH}

    def test_missing_fallback_toggles_fall_through_to_defaults(self):
        pref = _prefs()
        pref.follower = None
        pref.event_reminder = None
        resolution = resolve_channels(pref, NotificationCategory.FOLLOWER)
        assert resolution.channels == {DeliveryChannel.EMAIL, DeliveryChannel.PUSH, DeliveryChannel.IN_APP}

    def test_nothing_enabled_still_reaches_the_inbox(self):
        pref = _prefs()
        pref.marketing = ChannelToggles(email=False, push=False, in_app=False, sms=False)
        resolution = resolve_channels(pref, NotificationCategory.MARKETING)
        assert resolution.channels == {DeliveryChannel.IN_APP}

    def test_default_channels_for(self):
        assert default_channels_for("Follower") == {DeliveryChannel.IN_APP}


# ---------------------------------------------------------------
# is_quiet_hours
# ---------------------------------------------------------------
class TestIsQuietHours:
    @pytest.mark.parametrize(
        "hour, minute, expected",
        [
            (23, 0, True),
            (22, 0, True),
            (2, 30, True),
            (7, 59, True),
            (8, 0, False),
            (12, 0, False),
            (21, 59, False),
        ],
    )
    def test_window_crossing_midnight_wraps(self, hour, minute, expected):
        now = datetime(2030, 3, 1, hour, minute, tzinfo=UTC)
        assert is_quiet_hours(_window("22:00", "08:00"), now) is expected

    @pytest.mark.parametrize(
        "hour, expected",
        [(12, False), (13, True), (16, True), (17, False)],
    )
    def test_same_day_window(self, hour, expected):
        now = datetime(2030, 3, 1, hour, 0, tzinfo=UTC)
        assert is_quiet_hours(_window("13:00", "17:00"), now) is expected

    def test_window_is_evaluated_in_its_timezone(self):
        # 04:00 UTC is 23:00 in New York (EST)
        now = datetime(2030, 1, 15, 4, 0, tzinfo=UTC)
        assert is_quiet_hours(_window(timezone="America/New_York"), now) is True
        assert is_quiet_hours(_window(timezone="UTC"), now) is True
        assert is_quiet_hours(_window(timezone="Asia/Tokyo"), now) is False

    def test_disabled_window_is_never_quiet(self):
        now = datetime(2030, 3, 1, 23, 0, tzinfo=UTC)
        assert is_quiet_hours(_window(enabled=False), now) is False

    def test_missing_window_is_never_quiet(self):
        assert is_quiet_hours(None, datetime(2030, 3, 1, 23, 0, tzinfo=UTC)) is False

    def test_empty_window_is_never_quiet(self):
        now = datetime(2030, 3, 1, 22, 0, tzinfo=UTC)
        assert is_quiet_hours(_window("22:00", "22:00"), now) is False

    def test_naive_now_is_treated_as_utc(self):
        assert is_quiet_hours(_window(), datetime(2030, 3, 1, 23, 0)) is True


# ---------------------------------------------------------------
# quiet_hours_end
# ---------------------------------------------------------------
class TestQuietHoursEnd:
    def test_end_is_next_morning_before_midnight(self):
        now = datetime(2030, 3, 1, 23, 0, tzinfo=UTC)
        assert quiet_hours_end(_window(), now) == datetime(2030, 3, 2, 8, 0, tzinfo=UTC)

    def test_end_is_same_morning_after_midnight(self):
        now = datetime(2030, 3, 2, 3, 15, tzinfo=UTC)
        assert quiet_hours_end(_window(), now) == datetime(2030, 3, 2, 8, 0, tzinfo=UTC)

    def test_end_is_returned_in_utc(self):
        now = datetime(2030, 1, 15, 4, 0, tzinfo=UTC)  # 23:00 EST
        end = quiet_hours_end(_window(timezone="America/New_York"), now)
        assert end == datetime(2030, 1, 15, 13, 0, tzinfo=UTC)

    def test_none_outside_the_window(self):
        assert quiet_hours_end(_window(), datetime(2030, 3, 1, 12, 0, tzinfo=UTC)) is None

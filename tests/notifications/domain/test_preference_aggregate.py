"""Tests for NotificationPreference aggregate, its value objects and its events."""

import json

import pytest
from notifications.delivery.delivery import DeliveryChannel
from notifications.notification.notification import NotificationCategory
from notifications.preference.events import (
    CategoryResubscribed,
    CategoryUnsubscribed,
    ContactVerified,
    DeviceTokenRegistered,
    DeviceTokenRemoved,
    PreferencesCreated,
    PreferencesUpdated,
    UnsubscribedFromAll,
)
from notifications.preference.preference import (
    CATEGORY_FIELDS,
    DEFAULT_CATEGORY_CHANNELS,
    ChannelToggles,
    NotificationPreference,
    QuietHours,
)
from protean.exceptions import ValidationError


def _prefs(**kwargs):
    pref = NotificationPreference.create_default(user_id="user-001", **kwargs)
    pref._events.clear()
    return pref


class TestDefaults:
    def test_default_switches(self):
        pref = NotificationPreference.create_default(user_id="user-001")
        assert pref.notifications_enabled is True
        assert pref.unsubscribed_from_all is False
        assert pref.unsubscribed_category_list == []
        assert pref.device_token_list == []
        assert pref.quiet_hours.enabled is False
        assert isinstance(pref._events[0], PreferencesCreated)

    def test_default_channels_exclude_sms(self):
        pref = _prefs()
        assert pref.default_channels.enabled_channels() == {
            DeliveryChannel.EMAIL,
            DeliveryChannel.PUSH,
            DeliveryChannel.IN_APP,
        }

    @pytest.mark.parametrize("category", list(NotificationCategory))
    def test_every_category_gets_its_standard_toggles(self, category):
        pref = _prefs()
        toggles = pref.toggles_for(category)
        expected = DEFAULT_CATEGORY_CHANNELS[category]
        assert {name: getattr(toggles, name) for name in expected} == expected

    def test_review_defaults_to_email_and_in_app(self):
        assert _prefs().toggles_for(NotificationCategory.REVIEW).enabled_channels() == {
            DeliveryChannel.EMAIL,
            DeliveryChannel.IN_APP,
        }

    def test_only_system_alerts_default_to_sms(self):
        sms_categories = [c for c in NotificationCategory if DEFAULT_CATEGORY_CHANNELS[c]["sms"]]
        assert sms_categories == [NotificationCategory.SYSTEM_ALERT]

    def test_contact_data_is_unverified(self):
        pref = _prefs(primary_email="fan@example.com", phone_number="+15550100")
        assert pref.primary_email == "fan@example.com"
        assert pref.email_verified is False
        assert pref.phone_verified is False


class TestChannelToggles:
    def test_enabled_channels(self):
        toggles = ChannelToggles(email=True, push=False, in_app=True, sms=False)
        assert toggles.enabled_channels() == {DeliveryChannel.EMAIL, DeliveryChannel.IN_APP}

    def test_merged_only_changes_given_channels(self):
        toggles = ChannelToggles(email=True, push=True, in_app=True, sms=False)
        merged = toggles.merged({"push": False, "sms": None})
        assert merged.email is True
        assert merged.push is False
        assert merged.sms is False


class TestQuietHoursValueObject:
    def test_well_formed_window(self):
        qh = QuietHours(enabled=True, start="22:00", end="07:00", timezone="Europe/Berlin")
        assert qh.start == "22:00"

    @pytest.mark.parametrize("bad", ["25:00", "7:00", "22-00", "noon"])
    def test_rejects_malformed_times(self, bad):
        with pytest.raises(ValidationError):
            QuietHours(enabled=True, start=bad, end="07:00")

    def test_enabled_window_needs_both_ends(self):
        with pytest.raises(ValidationError):
            QuietHours(enabled=True, start="22:00")

    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValidationError):
            QuietHours(enabled=False, timezone="Mars/Olympus_Mons")


class TestSubscriptions:
    def test_unsubscribe_from_category(self):
        pref = _prefs()
        assert pref.unsubscribe_from(NotificationCategory.MARKETING) is True
        assert pref.is_subscribed_to("Marketing") is False
        assert isinstance(pref._events[-1], CategoryUnsubscribed)

    def test_unsubscribing_twice_is_a_no_op(self):
        pref = _prefs()
        pref.unsubscribe_from("Marketing")
        pref._events.clear()
        assert pref.unsubscribe_from("Marketing") is False
        assert pref._events == []

    def test_resubscribe(self):
        pref = _prefs()
        pref.unsubscribe_from("Comment")
        assert pref.resubscribe_to("Comment") is True
        assert pref.is_subscribed_to("Comment") is True
        assert isinstance(pref._events[-1], CategoryResubscribed)

    def test_resubscribing_when_subscribed_is_a_no_op(self):
        assert _prefs().resubscribe_to("Comment") is False

    def test_unsubscribe_from_all(self):
        pref = _prefs()
        assert pref.unsubscribe_from_all() is True
        assert pref.unsubscribed_from_all is True
        assert isinstance(pref._events[-1], UnsubscribedFromAll)
        assert pref.unsubscribe_from_all() is False


class TestDeviceTokens:
    def test_add_token(self):
        pref = _prefs()
        assert pref.add_device_token("tok-1") is True
        assert pref.device_token_list == ["tok-1"]
        assert isinstance(pref._events[-1], DeviceTokenRegistered)

    def test_duplicate_token_is_ignored(self):
        pref = _prefs()
        pref.add_device_token("tok-1")
        assert pref.add_device_token("tok-1") is False
        assert pref.device_token_list == ["tok-1"]

    def test_empty_token_is_rejected(self):
        with pytest.raises(ValidationError):
            _prefs().add_device_token("  ")

    def test_remove_token_records_reason(self):
        pref = _prefs()
        pref.add_device_token("tok-1")
        assert pref.remove_device_token("tok-1", reason="unregistered") is True
        assert pref.device_token_list == []
        event = pref._events[-1]
        assert isinstance(event, DeviceTokenRemoved)
        assert event.reason == "unregistered"

    def test_removing_unknown_token_is_a_no_op(self):
        assert _prefs().remove_device_token("nope") is False


class TestContactVerification:
    def test_verify_email(self):
        pref = _prefs(primary_email="fan@example.com")
        pref.verify_email()
        assert pref.email_verified is True
        event = pref._events[-1]
        assert isinstance(event, ContactVerified)
        assert event.contact_type == "email"

    def test_verify_email_without_address(self):
        with pytest.raises(ValidationError) as exc_info:
            _prefs().verify_email()
        assert "primary_email" in exc_info.value.messages

    def test_verify_phone_without_number(self):
        with pytest.raises(ValidationError):
            _prefs().verify_phone()


class TestApplyChanges:
    def test_category_toggles_merge_per_channel(self):
        pref = _prefs()
        changed = pref.apply_changes({"categories": {"review": {"push": True}}})
        assert changed == ["review"]
        assert pref.review.push is True
        assert pref.review.email is True

    def test_every_category_field_is_patchable(self):
        pref = _prefs()
        changes = {"categories": {field: {"sms": True} for field in CATEGORY_FIELDS.values()}}
        changed = pref.apply_changes(changes)
        assert sorted(changed) == sorted(CATEGORY_FIELDS.values())

    def test_quiet_hours_merge_and_revalidate(self):
        pref = _prefs()
        pref.apply_changes({"quiet_hours": {"enabled": True, "start": "22:00", "end": "08:00"}})
        assert pref.quiet_hours.enabled is True
        assert pref.quiet_hours.timezone == "UTC"

        pref.apply_changes({"quiet_hours": {"timezone": "Asia/Tokyo"}})
        assert pref.quiet_hours.start == "22:00"
        assert pref.quiet_hours.timezone == "Asia/Tokyo"

    def test_changing_email_clears_verification(self):
        pref = _prefs(primary_email="old@example.com")
        pref.verify_email()
        pref.apply_changes({"primary_email": "new@example.com"})
        assert pref.primary_email == "new@example.com"
        assert pref.email_verified is False

    def test_unsubscribed_categories_replace_the_list(self):
        pref = _prefs()
        pref.unsubscribe_from("Comment")
        pref.apply_changes({"unsubscribed_categories": ["Marketing", "Marketing"]})
        assert pref.unsubscribed_category_list == ["Marketing"]

    def test_update_event_lists_changed_fields(self):
        pref = _prefs()
        pref.apply_changes({"notifications_enabled": False, "default_channels": {"sms": True}})
        event = pref._events[-1]
        assert isinstance(event, PreferencesUpdated)
        assert json.loads(event.changed_fields) == ["notifications_enabled", "default_channels"]

    def test_empty_patch_changes_nothing(self):
        pref = _prefs()
        assert pref.apply_changes({}) == []
        assert pref._events == []

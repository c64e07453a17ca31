"""Tests for boundary validation of preference patches."""

import pytest
from notifications.preference.patch import PreferencesPatch, parse_patch
from protean.exceptions import ValidationError


class TestParsePatch:
    def test_returns_only_keys_that_were_set(self):
        changes = parse_patch({"categories": {"review": {"push": True}}})
        assert changes == {"categories": {"review": {"push": True}}}

    def test_accepts_a_model_instance(self):
        patch = PreferencesPatch(notifications_enabled=False)
        assert parse_patch(patch) == {"notifications_enabled": False}

    def test_empty_patch(self):
        assert parse_patch({}) == {}
        assert parse_patch(None) == {}

    def test_categories_serialize_to_values(self):
        changes = parse_patch({"unsubscribed_categories": ["Marketing"]})
        assert changes["unsubscribed_categories"] == ["Marketing"]

    def test_unknown_top_level_key_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_patch({"favourite_colour": "blue"})
        assert "favourite_colour" in exc_info.value.messages

    def test_unknown_category_key_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_patch({"categories": {"gossip": {"email": True}}})
        assert "categories.gossip" in exc_info.value.messages

    def test_unknown_channel_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_patch({"default_channels": {"fax": True}})

    def test_unknown_category_value_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_patch({"unsubscribed_categories": ["Gossip"]})

    @pytest.mark.parametrize("value", ["24:00", "7am", "22:60"])
    def test_quiet_hours_times_must_be_hh_mm(self, value):
        with pytest.raises(ValidationError):
            parse_patch({"quiet_hours": {"start": value}})

    def test_quiet_hours_timezone_must_exist(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_patch({"quiet_hours": {"timezone": "Atlantis/Capital"}})
        assert "quiet_hours.timezone" in exc_info.value.messages

    def test_malformed_email_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_patch({"primary_email": "not-an-email"})

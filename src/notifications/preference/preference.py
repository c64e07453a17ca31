"""NotificationPreference aggregate: a user's delivery preferences.

Holds the global switches (notifications enabled, unsubscribed from all),
fallback channel toggles, one fixed ``ChannelToggles`` value object per
notification category, the quiet-hours window and the contact data the
dispatcher needs to reach the user. Preferences are created lazily with
defaults the first time they are needed.
"""

import json
import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notifications.delivery.delivery import DeliveryChannel
from notifications.domain import notifications
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
from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String, Text, ValueObject

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Category → aggregate field holding its toggles
CATEGORY_FIELDS = {
    NotificationCategory.EVENT_REMINDER: "event_reminder",
    NotificationCategory.TICKET_SALE: "ticket_sale",
    NotificationCategory.REVIEW: "review",
    NotificationCategory.SYSTEM_ALERT: "system_alert",
    NotificationCategory.MARKETING: "marketing",
    NotificationCategory.INVITATION: "invitation",
    NotificationCategory.COMMENT: "comment",
    NotificationCategory.FOLLOWER: "follower",
}

FIELD_CATEGORIES = {field_name: category for category, field_name in CATEGORY_FIELDS.items()}

DEFAULT_CHANNELS = {"email": True, "push": True, "in_app": True, "sms": False}

DEFAULT_CATEGORY_CHANNELS = {
    NotificationCategory.EVENT_REMINDER: {"email": True, "push": True, "in_app": True, "sms": False},
    NotificationCategory.TICKET_SALE: {"email": True, "push": True, "in_app": True, "sms": False},
    NotificationCategory.REVIEW: {"email": True, "push": False, "in_app": True, "sms": False},
    NotificationCategory.SYSTEM_ALERT: {"email": True, "push": True, "in_app": True, "sms": True},
    NotificationCategory.MARKETING: {"email": False, "push": False, "in_app": True, "sms": False},
    NotificationCategory.INVITATION: {"email": True, "push": True, "in_app": True, "sms": False},
    NotificationCategory.COMMENT: {"email": False, "push": True, "in_app": True, "sms": False},
    NotificationCategory.FOLLOWER: {"email": False, "push": False, "in_app": True, "sms": False},
}

_TOGGLE_CHANNELS = {
    "email": DeliveryChannel.EMAIL,
    "push": DeliveryChannel.PUSH,
    "in_app": DeliveryChannel.IN_APP,
    "sms": DeliveryChannel.SMS,
}


def is_valid_timezone(name) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@notifications.value_object(part_of="NotificationPreference")
class ChannelToggles:
    """Which channels are switched on, for one category or as the fallback."""

    email: Boolean(default=False)
    push: Boolean(default=False)
    in_app: Boolean(default=False)
    sms: Boolean(default=False)

    def enabled_channels(self) -> set[DeliveryChannel]:
        return {channel for name, channel in _TOGGLE_CHANNELS.items() if getattr(self, name)}

    def merged(self, changes: dict) -> "ChannelToggles":
        values = {name: getattr(self, name) for name in _TOGGLE_CHANNELS}
        values.update({k: v for k, v in changes.items() if v is not None})
        return ChannelToggles(**values)


@notifications.value_object(part_of="NotificationPreference")
class QuietHours:
    """Do-not-disturb window in the user's timezone.

    ``start`` and ``end`` are ``HH:MM``. A window with ``start > end``
    crosses midnight (``22:00`` to ``07:00``).
    """

    enabled: Boolean(default=False)
    start: String(max_length=5)
    end: String(max_length=5)
    timezone: String(max_length=64, default="UTC")

    @invariant.post
    def window_must_be_well_formed(self):
        for label, value in (("start", self.start), ("end", self.end)):
            if value is None:
                if self.enabled:
                    raise ValidationError({f"quiet_hours_{label}": ["Required when quiet hours are enabled"]})
                continue
            if not _HHMM.match(value):
                raise ValidationError({f"quiet_hours_{label}": [f"Invalid time format: {value}. Use HH:MM"]})

    @invariant.post
    def timezone_must_exist(self):
        if self.timezone is not None and not is_valid_timezone(self.timezone):
            raise ValidationError({"quiet_hours_timezone": [f"Unknown timezone: {self.timezone}"]})


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@notifications.aggregate
class NotificationPreference:
    """A user's notification preferences and contact data."""

    user_id: Identifier(required=True, unique=True)

    # Global switches
    notifications_enabled: Boolean(default=True)
    unsubscribed_from_all: Boolean(default=False)
    unsubscribed_categories: Text()  # JSON list of NotificationCategory values

    # Channel toggles
    default_channels: ValueObject(ChannelToggles)
    event_reminder: ValueObject(ChannelToggles)
    ticket_sale: ValueObject(ChannelToggles)
    review: ValueObject(ChannelToggles)
    system_alert: ValueObject(ChannelToggles)
    marketing: ValueObject(ChannelToggles)
    invitation: ValueObject(ChannelToggles)
    comment: ValueObject(ChannelToggles)
    follower: ValueObject(ChannelToggles)

    quiet_hours: ValueObject(QuietHours)

    # Contact data
    primary_email: String(max_length=254)
    email_verified: Boolean(default=False)
    phone_number: String(max_length=20)
    phone_verified: Boolean(default=False)
    device_tokens: Text()  # JSON list

    # Locale
    language: String(max_length=10, default="en-US")
    timezone: String(max_length=64, default="UTC")

    # Timestamps
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def timezone_must_exist(self):
        if self.timezone is not None and not is_valid_timezone(self.timezone):
            raise ValidationError({"timezone": [f"Unknown timezone: {self.timezone}"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create_default(cls, user_id, primary_email=None, phone_number=None):
        """Create default preferences for a user.

        Every category gets its standard toggles; quiet hours are off.
        """
        now = datetime.now(UTC)

        toggles = {
            field_name: ChannelToggles(**DEFAULT_CATEGORY_CHANNELS[category])
            for category, field_name in CATEGORY_FIELDS.items()
        }
        preference = cls(
            user_id=user_id,
            notifications_enabled=True,
            unsubscribed_from_all=False,
            unsubscribed_categories=json.dumps([]),
            default_channels=ChannelToggles(**DEFAULT_CHANNELS),
            quiet_hours=QuietHours(enabled=False, timezone="UTC"),
            primary_email=primary_email,
            phone_number=phone_number,
            device_tokens=json.dumps([]),
            language="en-US",
            timezone="UTC",
            created_at=now,
            updated_at=now,
            **toggles,
        )

        preference.raise_(
            PreferencesCreated(
                preference_id=str(preference.id),
                user_id=str(user_id),
                created_at=now,
            )
        )

        return preference

    # -------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------
    @property
    def unsubscribed_category_list(self) -> list[str]:
        return json.loads(self.unsubscribed_categories) if self.unsubscribed_categories else []

    @property
    def device_token_list(self) -> list[str]:
        return json.loads(self.device_tokens) if self.device_tokens else []

    def toggles_for(self, category) -> ChannelToggles | None:
        return getattr(self, CATEGORY_FIELDS[NotificationCategory(category)])

    def is_subscribed_to(self, category) -> bool:
        return NotificationCategory(category).value not in self.unsubscribed_category_list

    # -------------------------------------------------------------------
    # Patch
    # -------------------------------------------------------------------
    def apply_changes(self, changes: dict) -> list[str]:
        """Merge an already-validated patch into the preferences.

        Channel toggles merge per channel; quiet hours merge per key and are
        re-validated as a whole. Returns the names of the fields that changed.
        """
        changed = []

        for flag in ("notifications_enabled", "unsubscribed_from_all", "language", "timezone"):
            if flag in changes and changes[flag] is not None:
                setattr(self, flag, changes[flag])
                changed.append(flag)

        if changes.get("default_channels"):
            current = self.default_channels or ChannelToggles(**DEFAULT_CHANNELS)
            self.default_channels = current.merged(changes["default_channels"])
            changed.append("default_channels")

        for field_name, toggles in (changes.get("categories") or {}).items():
            if not toggles:
                continue
            category = FIELD_CATEGORIES[field_name]
            current = getattr(self, field_name) or ChannelToggles(**DEFAULT_CATEGORY_CHANNELS[category])
            setattr(self, field_name, current.merged(toggles))
            changed.append(field_name)

        if changes.get("quiet_hours"):
            current = self.quiet_hours
            values = {
                "enabled": current.enabled if current else False,
                "start": current.start if current else None,
                "end": current.end if current else None,
                "timezone": current.timezone if current else self.timezone,
            }
            values.update(changes["quiet_hours"])
            self.quiet_hours = QuietHours(**values)
            changed.append("quiet_hours")

        if "unsubscribed_categories" in changes and changes["unsubscribed_categories"] is not None:
            values = [NotificationCategory(c).value for c in changes["unsubscribed_categories"]]
            self.unsubscribed_categories = json.dumps(sorted(set(values)))
            changed.append("unsubscribed_categories")

        if changes.get("primary_email") and changes["primary_email"] != self.primary_email:
            self.primary_email = changes["primary_email"]
            self.email_verified = False
            changed.append("primary_email")

        if changes.get("phone_number") and changes["phone_number"] != self.phone_number:
            self.phone_number = changes["phone_number"]
            self.phone_verified = False
            changed.append("phone_number")

        if changed:
            now = datetime.now(UTC)
            self.updated_at = now
            self.raise_(
                PreferencesUpdated(
                    preference_id=str(self.id),
                    user_id=str(self.user_id),
                    changed_fields=json.dumps(changed),
                    updated_at=now,
                )
            )
        return changed

    # -------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------
    def unsubscribe_from(self, category) -> bool:
        """Unsubscribe from a category. Returns False if already unsubscribed."""
        category = NotificationCategory(category)
        categories = self.unsubscribed_category_list
        if category.value in categories:
            return False

        categories.append(category.value)
        now = datetime.now(UTC)
        self.unsubscribed_categories = json.dumps(sorted(categories))
        self.updated_at = now

        self.raise_(
            CategoryUnsubscribed(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                category=category.value,
                unsubscribed_at=now,
            )
        )
        return True

    def resubscribe_to(self, category) -> bool:
        """Subscribe again to a category. Returns False if it was not unsubscribed."""
        category = NotificationCategory(category)
        categories = self.unsubscribed_category_list
        if category.value not in categories:
            return False

        categories.remove(category.value)
        now = datetime.now(UTC)
        self.unsubscribed_categories = json.dumps(categories)
        self.updated_at = now

        self.raise_(
            CategoryResubscribed(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                category=category.value,
                resubscribed_at=now,
            )
        )
        return True

    def unsubscribe_from_all(self) -> bool:
        if self.unsubscribed_from_all:
            return False

        now = datetime.now(UTC)
        self.unsubscribed_from_all = True
        self.updated_at = now

        self.raise_(
            UnsubscribedFromAll(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                unsubscribed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Device tokens
    # -------------------------------------------------------------------
    def add_device_token(self, token) -> bool:
        if not token or not token.strip():
            raise ValidationError({"device_token": ["Device token must not be empty"]})

        tokens = self.device_token_list
        if token in tokens:
            return False

        tokens.append(token)
        now = datetime.now(UTC)
        self.device_tokens = json.dumps(tokens)
        self.updated_at = now

        self.raise_(
            DeviceTokenRegistered(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                registered_at=now,
            )
        )
        return True

    def remove_device_token(self, token, reason="user_request") -> bool:
        tokens = self.device_token_list
        if token not in tokens:
            return False

        tokens.remove(token)
        now = datetime.now(UTC)
        self.device_tokens = json.dumps(tokens)
        self.updated_at = now

        self.raise_(
            DeviceTokenRemoved(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                reason=reason,
                removed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Contact verification
    # -------------------------------------------------------------------
    def verify_email(self):
        if not self.primary_email:
            raise ValidationError({"primary_email": ["No email address to verify"]})
        self._mark_verified("email")

    def verify_phone(self):
        if not self.phone_number:
            raise ValidationError({"phone_number": ["No phone number to verify"]})
        self._mark_verified("phone")

    def _mark_verified(self, contact_type):
        now = datetime.now(UTC)
        if contact_type == "email":
            self.email_verified = True
        else:
            self.phone_verified = True
        self.updated_at = now

        self.raise_(
            ContactVerified(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                contact_type=contact_type,
                verified_at=now,
            )
        )

"""Domain events for the NotificationPreference aggregate."""

from notifications.domain import notifications
from protean.fields import DateTime, Identifier, String


@notifications.event(part_of="NotificationPreference")
class PreferencesCreated:
    """Default notification preferences were created for a user."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    created_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreference")
class PreferencesUpdated:
    """A user's preferences were changed through a patch."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    changed_fields: String(required=True)  # JSON list of field names
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreference")
class CategoryUnsubscribed:
    """A user unsubscribed from a notification category."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    unsubscribed_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreference")
class CategoryResubscribed:
    """A user subscribed again to a previously unsubscribed category."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    resubscribed_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreference")
class UnsubscribedFromAll:
    """A user opted out of every notification."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    unsubscribed_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreference")
class DeviceTokenRegistered:
    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    registered_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreference")
class DeviceTokenRemoved:
    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    reason: String(max_length=100)
    removed_at: DateTime(required=True)


@notifications.event(part_of="NotificationPreference")
class ContactVerified:
    """The user's email address or phone number was verified."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    contact_type: String(required=True)  # "email" or "phone"
    verified_at: DateTime(required=True)

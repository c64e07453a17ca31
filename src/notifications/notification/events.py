"""Domain events for the Notification aggregate."""

from notifications.domain import notifications
from protean.fields import DateTime, Identifier, String


@notifications.event(part_of="Notification")
class NotificationCreated:
    """A notification was admitted and persisted."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    title: String(required=True)
    template_id: String()
    scheduled_for: DateTime()
    created_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationDeferred:
    """Dispatch was postponed until the user's quiet hours end."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    deferred_until: DateTime()
    release_at: DateTime()  # later of scheduled_for and deferred_until
    deferred_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationSent:
    """Delivery attempts were produced for the resolved channels."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    channels: String(required=True)  # JSON list
    sent_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationFailed:
    """The notification could not be dispatched at all."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    reason: String(required=True)
    failed_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationRead:
    """The user read the notification."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    read_at: DateTime(required=True)

"""Domain events for the DeliveryAttempt aggregate."""

from notifications.domain import notifications
from protean.fields import Boolean, DateTime, Identifier, Integer, List, String


@notifications.event(part_of="DeliveryAttempt")
class DeliveryQueued:
    """A delivery attempt was created for one channel of a notification."""

    __version__ = 1

    delivery_id: Identifier(required=True)
    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    channel: String(required=True)
    queued_at: DateTime(required=True)


@notifications.event(part_of="DeliveryAttempt")
class DeliveryStatusChanged:
    """A delivery attempt moved forward in its lifecycle."""

    __version__ = 1

    delivery_id: Identifier(required=True)
    notification_id: Identifier(required=True)
    category: String(required=True)
    channel: String(required=True)
    from_status: String(required=True)
    to_status: String(required=True)
    entered: List(content_type=String)  # every status passed through, target included
    provider_message_id: String()
    changed_at: DateTime(required=True)


@notifications.event(part_of="DeliveryAttempt")
class DeliveryFailed:
    """A delivery attempt failed."""

    __version__ = 1

    delivery_id: Identifier(required=True)
    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    channel: String(required=True)
    error_code: String()
    error_message: String()
    attempt_count: Integer(required=True)
    max_attempts: Integer(required=True)
    permanent: Boolean(default=False)
    counts_as_failure: Boolean(default=False)  # first final failure of this attempt
    next_retry_at: DateTime()
    failed_at: DateTime(required=True)


@notifications.event(part_of="DeliveryAttempt")
class DeliveryRequeued:
    """A failed delivery attempt was queued again by the retry handler."""

    __version__ = 1

    delivery_id: Identifier(required=True)
    notification_id: Identifier(required=True)
    channel: String(required=True)
    attempt_count: Integer(required=True)
    requeued_at: DateTime(required=True)

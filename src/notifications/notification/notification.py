"""Notification aggregate: one logical notification intent for a user.

A notification is admitted by the orchestrator, resolved against the
user's preferences and then either dispatched (producing one
DeliveryAttempt per channel), deferred past quiet hours, or failed when
the user opted out.

State Machine (4 states):
    PENDING → SENT → READ
    PENDING → FAILED

The ``is_read`` flag is independent of status: reading a FAILED or
PENDING notification sets the flag without changing status.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from notifications.domain import notifications
from notifications.errors import InvalidTransition, ValidationError
from notifications.notification.events import (
    NotificationCreated,
    NotificationDeferred,
    NotificationFailed,
    NotificationRead,
    NotificationSent,
)
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class NotificationCategory(Enum):
    EVENT_REMINDER = "EventReminder"
    TICKET_SALE = "TicketSale"
    REVIEW = "Review"
    SYSTEM_ALERT = "SystemAlert"
    MARKETING = "Marketing"
    INVITATION = "Invitation"
    COMMENT = "Comment"
    FOLLOWER = "Follower"


class NotificationStatus(Enum):
    PENDING = "Pending"
    SENT = "Sent"
    FAILED = "Failed"
    READ = "Read"


# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    NotificationStatus.PENDING: {
        NotificationStatus.SENT,
        NotificationStatus.FAILED,
    },
    NotificationStatus.SENT: {
        NotificationStatus.READ,
    },
    NotificationStatus.FAILED: set(),  # Terminal
    NotificationStatus.READ: set(),  # Terminal
}


def _as_utc(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@notifications.aggregate
class Notification:
    """A notification addressed to one user in one category.

    Content and addressing are immutable after creation. Only status, the
    read flag, deferral and retry bookkeeping change over its lifetime.
    """

    user_id: Identifier(required=True)
    category: String(choices=NotificationCategory, required=True)

    # Content
    title: String(required=True, max_length=255)
    body: Text(required=True)
    template_id: String(max_length=100)
    payload: Text()  # JSON: template variables and client data

    # Status
    status: String(choices=NotificationStatus, default=NotificationStatus.PENDING.value)
    channels: Text()  # JSON list of DeliveryChannel values resolved at dispatch
    failure_reason: String(max_length=500)
    is_read: Boolean(default=False)
    read_at: DateTime()

    # Scheduling
    scheduled_for: DateTime()  # Null means immediate
    deferred_until: DateTime()  # Set while held back by quiet hours

    # Retry bookkeeping across this notification's delivery attempts
    retry_count: Integer(default=0)

    # Timestamps
    sent_at: DateTime()
    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id,
        category,
        title,
        body,
        template_id=None,
        payload=None,
        scheduled_for=None,
    ):
        """Create a new notification in PENDING status."""
        now = datetime.now(UTC)

        notification = cls(
            user_id=user_id,
            category=category,
            title=title,
            body=body,
            template_id=template_id,
            payload=json.dumps(payload) if payload is not None else None,
            scheduled_for=_as_utc(scheduled_for),
            status=NotificationStatus.PENDING.value,
            channels=json.dumps([]),
            is_read=False,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )

        notification.raise_(
            NotificationCreated(
                notification_id=str(notification.id),
                user_id=str(user_id),
                category=category,
                title=title,
                template_id=template_id,
                scheduled_for=notification.scheduled_for,
                created_at=now,
            )
        )

        return notification

    # -------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------
    @property
    def payload_data(self) -> dict:
        return json.loads(self.payload) if self.payload else {}

    @property
    def channel_list(self) -> list[str]:
        return json.loads(self.channels) if self.channels else []

    def release_at(self):
        """The instant this notification becomes eligible for dispatch, if it is held back."""
        held = [t for t in (_as_utc(self.scheduled_for), _as_utc(self.deferred_until)) if t is not None]
        return max(held) if held else None

    def is_due(self, as_of) -> bool:
        if NotificationStatus(self.status) != NotificationStatus.PENDING:
            return False
        release = self.release_at()
        return release is None or release <= _as_utc(as_of)

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        """Validate state machine transition."""
        current = NotificationStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def defer(self, until=None):
        """Hold the notification back until quiet hours end.

        ``until=None`` leaves it pending with no quiet-hours release time. An
        immediate notification deferred that way is never picked up by the
        scheduler sweep.
        """
        if NotificationStatus(self.status) != NotificationStatus.PENDING:
            raise InvalidTransition({"status": [f"Cannot defer a notification in {self.status} status"]})

        now = datetime.now(UTC)
        self.deferred_until = _as_utc(until)
        self.updated_at = now

        self.raise_(
            NotificationDeferred(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                deferred_until=self.deferred_until,
                release_at=self.release_at(),
                deferred_at=now,
            )
        )

    def mark_sent(self, channels, sent_at=None):
        """Record that delivery attempts were produced for ``channels``."""
        self._assert_can_transition(NotificationStatus.SENT)

        now = sent_at or datetime.now(UTC)
        self.status = NotificationStatus.SENT.value
        self.channels = json.dumps(sorted(channels))
        self.deferred_until = None
        self.sent_at = now
        self.updated_at = now

        self.raise_(
            NotificationSent(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                category=self.category,
                channels=self.channels,
                sent_at=now,
            )
        )

    def mark_failed(self, reason):
        """Mark the notification as failed before any delivery attempt was made."""
        self._assert_can_transition(NotificationStatus.FAILED)

        now = datetime.now(UTC)
        self.status = NotificationStatus.FAILED.value
        self.failure_reason = reason[:500]
        self.deferred_until = None
        self.updated_at = now

        self.raise_(
            NotificationFailed(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                reason=self.failure_reason,
                failed_at=now,
            )
        )

    def mark_read(self, read_at=None) -> bool:
        """Set the read flag; SENT notifications also move to READ.

        Returns False when the notification was already read.
        """
        if self.is_read:
            return False

        now = read_at or datetime.now(UTC)
        self.is_read = True
        self.read_at = now
        if NotificationStatus(self.status) == NotificationStatus.SENT:
            self.status = NotificationStatus.READ.value
        self.updated_at = now

        self.raise_(
            NotificationRead(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                category=self.category,
                read_at=now,
            )
        )
        return True

    def record_retry(self):
        self.retry_count = (self.retry_count or 0) + 1
        self.updated_at = datetime.now(UTC)


def parse_category(value) -> NotificationCategory:
    """Coerce ``value`` to a category, rejecting unknown ones as a validation error."""
    try:
        return NotificationCategory(value)
    except ValueError:
        raise ValidationError({"category": [f"Unknown notification category: {value}"]}) from None

"""DeliveryAttempt aggregate: one channel-specific delivery of a notification.

The dispatcher creates exactly one attempt per resolved channel. Provider
callbacks then move the attempt forward; the retry handler is the only
path back from FAILED.

State Machine (7 states):
    QUEUED → SENT → DELIVERED → OPENED → CLICKED
    QUEUED → DELIVERED                    (in-app, never SENT)
    QUEUED → FAILED | BOUNCED
    SENT → FAILED | BOUNCED
    FAILED → (retry) → QUEUED

Status updates may skip ahead to any forward-reachable status. Skipped
intermediate states are filled in (``SENT → OPENED`` also stamps
``delivered_at``) so analytics never sees an open without a delivery.
"""

from collections import deque
from datetime import UTC, datetime
from enum import Enum

from notifications.delivery.events import (
    DeliveryFailed,
    DeliveryQueued,
    DeliveryRequeued,
    DeliveryStatusChanged,
)
from notifications.domain import notifications
from notifications.errors import InvalidTransition
from notifications.notification.notification import NotificationCategory
from protean.fields import Boolean, DateTime, Identifier, Integer, String


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class DeliveryChannel(Enum):
    EMAIL = "Email"
    PUSH = "Push"
    IN_APP = "InApp"
    SMS = "SMS"


class DeliveryStatus(Enum):
    QUEUED = "Queued"
    SENT = "Sent"
    DELIVERED = "Delivered"
    OPENED = "Opened"
    CLICKED = "Clicked"
    FAILED = "Failed"
    BOUNCED = "Bounced"


# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    DeliveryStatus.QUEUED: {
        DeliveryStatus.SENT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.BOUNCED,
    },
    DeliveryStatus.SENT: {
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.BOUNCED,
    },
    DeliveryStatus.DELIVERED: {DeliveryStatus.OPENED},
    DeliveryStatus.OPENED: {DeliveryStatus.CLICKED},
    DeliveryStatus.CLICKED: set(),  # Terminal
    DeliveryStatus.FAILED: {
        DeliveryStatus.QUEUED,  # Via retry only
    },
    DeliveryStatus.BOUNCED: set(),  # Terminal
}

_RETRY_EDGE = (DeliveryStatus.FAILED, DeliveryStatus.QUEUED)

_PROGRESSION = [
    DeliveryStatus.QUEUED,
    DeliveryStatus.SENT,
    DeliveryStatus.DELIVERED,
    DeliveryStatus.OPENED,
    DeliveryStatus.CLICKED,
]

_TIMESTAMP_FIELDS = {
    DeliveryStatus.SENT: "sent_at",
    DeliveryStatus.DELIVERED: "delivered_at",
    DeliveryStatus.OPENED: "opened_at",
    DeliveryStatus.CLICKED: "clicked_at",
    DeliveryStatus.FAILED: "failed_at",
    DeliveryStatus.BOUNCED: "bounced_at",
}


def _forward_reachable(start: DeliveryStatus) -> set[DeliveryStatus]:
    """Statuses reachable from ``start`` without taking the retry edge."""
    seen: set[DeliveryStatus] = set()
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for nxt in _VALID_TRANSITIONS[current]:
            if (current, nxt) == _RETRY_EDGE or nxt in seen:
                continue
            seen.add(nxt)
            queue.append(nxt)
    seen.discard(start)
    return seen


FORWARD_REACHABLE = {status: _forward_reachable(status) for status in DeliveryStatus}


def implied_path(current: DeliveryStatus, target: DeliveryStatus, channel=None) -> list[DeliveryStatus]:
    """Statuses entered when moving from ``current`` to ``target``, ``target`` included.

    In-app attempts have no provider hop and take the direct
    ``QUEUED → DELIVERED`` edge, so they never enter SENT.
    """
    if current in _PROGRESSION and target in _PROGRESSION:
        path = _PROGRESSION[_PROGRESSION.index(current) + 1 : _PROGRESSION.index(target) + 1]
        if channel is not None and DeliveryChannel(channel) == DeliveryChannel.IN_APP:
            path = [status for status in path if status != DeliveryStatus.SENT]
        return path
    return [target]


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@notifications.aggregate
class DeliveryAttempt:
    """Tracks the delivery of one notification over one channel."""

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(choices=NotificationCategory, required=True)
    channel: String(choices=DeliveryChannel, required=True)
    status: String(choices=DeliveryStatus, default=DeliveryStatus.QUEUED.value)

    recipient_address: String(max_length=500)
    provider_message_id: String(max_length=255)

    # Attempts
    attempt_count: Integer(default=0)
    max_attempts: Integer(default=3)
    last_attempt_at: DateTime()
    next_retry_at: DateTime()
    error_code: String(max_length=100)
    error_message: String(max_length=1000)
    failure_counted: Boolean(default=False)

    # Lifecycle timestamps
    sent_at: DateTime()
    delivered_at: DateTime()
    opened_at: DateTime()
    clicked_at: DateTime()
    failed_at: DateTime()
    bounced_at: DateTime()
    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, notification_id, user_id, category, channel, recipient_address=None, max_attempts=3):
        now = datetime.now(UTC)

        attempt = cls(
            notification_id=notification_id,
            user_id=user_id,
            category=category,
            channel=channel,
            status=DeliveryStatus.QUEUED.value,
            recipient_address=recipient_address,
            attempt_count=0,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )

        attempt.raise_(
            DeliveryQueued(
                delivery_id=str(attempt.id),
                notification_id=str(notification_id),
                user_id=str(user_id),
                category=category,
                channel=channel,
                queued_at=now,
            )
        )

        return attempt

    # -------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------
    @property
    def can_retry(self) -> bool:
        return DeliveryStatus(self.status) == DeliveryStatus.FAILED and self.attempt_count < self.max_attempts

    def retry_due(self, as_of) -> bool:
        if not self.can_retry or self.next_retry_at is None:
            return False
        next_retry_at = self.next_retry_at
        if next_retry_at.tzinfo is None:
            next_retry_at = next_retry_at.replace(tzinfo=UTC)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=UTC)
        return next_retry_at <= as_of

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def begin_attempt(self, at=None):
        """Count a provider call about to be made for this attempt."""
        if DeliveryStatus(self.status) != DeliveryStatus.QUEUED:
            raise InvalidTransition({"status": [f"Cannot send a delivery in {self.status} status"]})

        now = at or datetime.now(UTC)
        self.attempt_count = self.attempt_count + 1
        self.last_attempt_at = now
        self.next_retry_at = None
        self.updated_at = now

    def advance_to(self, target, provider_message_id=None, occurred_at=None) -> list[DeliveryStatus]:
        """Move forward to ``target`` and return every status entered on the way.

        FAILED is not reachable through here; use ``record_failure``.
        """
        current = DeliveryStatus(self.status)
        target = DeliveryStatus(target)
        if target == DeliveryStatus.FAILED or target not in FORWARD_REACHABLE[current]:
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target.value}"]})

        now = occurred_at or datetime.now(UTC)
        entered = implied_path(current, target, self.channel)
        for status in entered:
            field_name = _TIMESTAMP_FIELDS[status]
            if getattr(self, field_name) is None:
                setattr(self, field_name, now)

        self.status = target.value
        if provider_message_id:
            self.provider_message_id = provider_message_id
        self.updated_at = now

        self.raise_(
            DeliveryStatusChanged(
                delivery_id=str(self.id),
                notification_id=str(self.notification_id),
                category=self.category,
                channel=self.channel,
                from_status=current.value,
                to_status=target.value,
                entered=[status.value for status in entered],
                provider_message_id=self.provider_message_id,
                changed_at=now,
            )
        )
        return entered

    def record_failure(self, error_code, error_message, next_retry_at=None, occurred_at=None):
        """Mark the attempt FAILED.

        ``next_retry_at`` schedules an automatic retry; without it the
        failure is final unless a caller retries explicitly.
        """
        current = DeliveryStatus(self.status)
        if DeliveryStatus.FAILED not in _VALID_TRANSITIONS[current]:
            raise InvalidTransition(
                {"status": [f"Cannot transition from {current.value} to {DeliveryStatus.FAILED.value}"]}
            )

        now = occurred_at or datetime.now(UTC)
        self.status = DeliveryStatus.FAILED.value
        self.error_code = error_code
        self.error_message = (error_message or "")[:1000]
        self.next_retry_at = next_retry_at if self.attempt_count < self.max_attempts else None
        self.failed_at = now
        self.updated_at = now
        self._raise_failed(now)

    def requeue(self):
        """Move a FAILED attempt back to QUEUED for another provider call."""
        if DeliveryStatus(self.status) != DeliveryStatus.FAILED:
            raise InvalidTransition({"status": [f"Only failed deliveries can be retried, not {self.status}"]})

        now = datetime.now(UTC)
        self.status = DeliveryStatus.QUEUED.value
        self.error_code = None
        self.error_message = None
        self.next_retry_at = None
        self.updated_at = now

        self.raise_(
            DeliveryRequeued(
                delivery_id=str(self.id),
                notification_id=str(self.notification_id),
                channel=self.channel,
                attempt_count=self.attempt_count,
                requeued_at=now,
            )
        )

    def abandon(self, error_code, error_message):
        """Close a FAILED attempt for good without another provider call."""
        if DeliveryStatus(self.status) != DeliveryStatus.FAILED:
            raise InvalidTransition({"status": [f"Only failed deliveries can be abandoned, not {self.status}"]})

        now = datetime.now(UTC)
        self.error_code = error_code
        self.error_message = (error_message or "")[:1000]
        self.next_retry_at = None
        self.updated_at = now
        self._raise_failed(now)

    def _raise_failed(self, now):
        # A failure counts once, when the attempt first stops retrying
        permanent = self.next_retry_at is None
        counts = permanent and not self.failure_counted
        if counts:
            self.failure_counted = True

        self.raise_(
            DeliveryFailed(
                delivery_id=str(self.id),
                notification_id=str(self.notification_id),
                user_id=str(self.user_id),
                category=self.category,
                channel=self.channel,
                error_code=self.error_code,
                error_message=self.error_message,
                attempt_count=self.attempt_count,
                max_attempts=self.max_attempts,
                permanent=permanent,
                counts_as_failure=counts,
                next_retry_at=self.next_retry_at,
                failed_at=now,
            )
        )

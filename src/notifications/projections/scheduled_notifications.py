"""ScheduledNotifications: notifications held back until a release time.

A row exists while a PENDING notification waits for its ``scheduled_for``
or quiet-hours ``deferred_until``. The scheduler sweep reads this queue
instead of scanning every pending notification.
"""

from notifications.domain import notifications
from notifications.notification.events import (
    NotificationCreated,
    NotificationDeferred,
    NotificationFailed,
    NotificationSent,
)
from notifications.notification.notification import Notification
from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

SCHEDULED = "schedule"
QUIET_HOURS = "quiet_hours"


@notifications.projection
class ScheduledNotifications:
    notification_id: Identifier(identifier=True, required=True)
    user_id: Identifier(required=True)
    release_at: DateTime(required=True)
    held_for: String(max_length=20)  # "schedule" or "quiet_hours"
    updated_at: DateTime()


def _hold(notification_id, user_id, release_at, held_for, at) -> None:
    repo = current_domain.repository_for(ScheduledNotifications)
    try:
        entry = repo.get(notification_id)
        entry.release_at = release_at
        entry.held_for = held_for
        entry.updated_at = at
    except ObjectNotFoundError:
        entry = ScheduledNotifications(
            notification_id=notification_id,
            user_id=user_id,
            release_at=release_at,
            held_for=held_for,
            updated_at=at,
        )
    repo.add(entry)


def release_entry(notification_id) -> None:
    """Drop the queue entry of ``notification_id``, if it has one."""
    repo = current_domain.repository_for(ScheduledNotifications)
    try:
        repo._dao.delete(repo.get(notification_id))
    except ObjectNotFoundError:
        pass


@notifications.projector(projector_for=ScheduledNotifications, aggregates=[Notification])
class ScheduledNotificationsProjector:
    @on(NotificationCreated)
    def on_notification_created(self, event):
        if event.scheduled_for is not None:
            _hold(event.notification_id, event.user_id, event.scheduled_for, SCHEDULED, event.created_at)

    @on(NotificationDeferred)
    def on_notification_deferred(self, event):
        """Deferred without a release time means nothing will pick it up again."""
        if event.release_at is None:
            release_entry(event.notification_id)
        else:
            _hold(event.notification_id, event.user_id, event.release_at, QUIET_HOURS, event.deferred_at)

    @on(NotificationSent)
    def on_notification_sent(self, event):
        release_entry(event.notification_id)

    @on(NotificationFailed)
    def on_notification_failed(self, event):
        release_entry(event.notification_id)

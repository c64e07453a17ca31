"""Scheduler sweep: releases held-back notifications and due retries.

Run periodically (``server.py`` loops over it). Each sweep:

1. dispatches PENDING notifications whose ``scheduled_for`` or quiet-hours
   ``deferred_until`` has passed, taken from the ``ScheduledNotifications``
   queue, and
2. retries FAILED delivery attempts whose ``next_retry_at`` has passed.

PENDING notifications with neither time set are never picked up here.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from notifications.delivery.retry import RetryHandler
from notifications.notification.notification import Notification, NotificationStatus
from notifications.projections.scheduled_notifications import ScheduledNotifications
from notifications.utils.query import fetch_all

logger = structlog.get_logger(__name__)


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class NotificationScheduler:
    def __init__(self, release: Callable[[Notification, datetime], Notification], retry_handler: RetryHandler):
        self.release = release
        self.retry_handler = retry_handler

    def due_notifications(self, as_of: datetime) -> list[Notification]:
        queue = current_domain.repository_for(ScheduledNotifications)
        repo = current_domain.repository_for(Notification)

        due = []
        for entry in fetch_all(queue, order_by="release_at"):
            if _utc(entry.release_at) > as_of:
                continue
            try:
                notification = repo.get(entry.notification_id)
            except ObjectNotFoundError:
                # Deleted while held back
                queue._dao.delete(entry)
                continue
            if notification.is_due(as_of):
                due.append(notification)
        return due

    def process_due(self, as_of: datetime | None = None) -> dict:
        """Run one sweep.

        ``released`` counts notifications that actually left PENDING;
        ``deferred`` counts due ones that went straight back to waiting for
        quiet hours to end.
        """
        as_of = _utc(as_of or datetime.now(UTC))

        released = deferred = 0
        for notification in self.due_notifications(as_of):
            try:
                result = self.release(notification, as_of)
            except Exception as exc:
                logger.error(
                    "Scheduled notification dispatch failed",
                    notification_id=str(notification.id),
                    error=str(exc),
                )
                continue
            if NotificationStatus(result.status) == NotificationStatus.PENDING:
                deferred += 1
            else:
                released += 1

        retried = self.retry_handler.retry_due(as_of)

        logger.info(
            "Scheduled notifications processed",
            released=released,
            deferred=deferred,
            retried=len(retried),
            as_of=str(as_of),
        )
        return {"released": released, "deferred": deferred, "retried": len(retried)}

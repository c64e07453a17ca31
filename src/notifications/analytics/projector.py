"""NotificationAnalyticsProjector: feeds the daily counters from domain events."""

from notifications.analytics.aggregator import AnalyticsAggregator
from notifications.analytics.analytics import ALL_CHANNELS, NotificationAnalytics
from notifications.delivery.delivery import DeliveryAttempt
from notifications.delivery.events import DeliveryFailed, DeliveryQueued, DeliveryStatusChanged
from notifications.domain import notifications
from notifications.notification.events import NotificationCreated, NotificationRead
from notifications.notification.notification import Notification
from notifications.store import get_shared_store
from protean.core.projector import on


def _aggregator() -> AnalyticsAggregator:
    return AnalyticsAggregator(get_shared_store())


@notifications.projector(projector_for=NotificationAnalytics, aggregates=[Notification, DeliveryAttempt])
class NotificationAnalyticsProjector:
    @on(NotificationCreated)
    def on_notification_created(self, event):
        _aggregator().increment(event.category, ALL_CHANNELS, "total_notifications", on=event.created_at)

    @on(NotificationRead)
    def on_notification_read(self, event):
        _aggregator().increment(event.category, ALL_CHANNELS, "total_read", on=event.read_at)

    @on(DeliveryQueued)
    def on_delivery_queued(self, event):
        """Every attempt counts as sent once, whatever happens to it next."""
        _aggregator().increment(event.category, event.channel, "total_sent", on=event.queued_at)

    @on(DeliveryStatusChanged)
    def on_delivery_status_changed(self, event):
        statuses = event.entered or [event.to_status]
        _aggregator().count_statuses(event.category, event.channel, statuses, on=event.changed_at)

    @on(DeliveryFailed)
    def on_delivery_failed(self, event):
        # Failures with a retry pending are counted when they become final
        if event.counts_as_failure:
            _aggregator().increment(event.category, event.channel, "total_failed", on=event.failed_at)

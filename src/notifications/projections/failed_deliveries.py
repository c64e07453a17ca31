"""FailedDeliveries: queue of failed delivery attempts for retry/investigation."""

from notifications.delivery.delivery import DeliveryAttempt
from notifications.delivery.events import DeliveryFailed, DeliveryRequeued
from notifications.domain import notifications
from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain


@notifications.projection
class FailedDeliveries:
    delivery_id: Identifier(identifier=True, required=True)
    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    category: String(required=True)
    channel: String(required=True)
    error_code: String(max_length=100)
    error_message: String(max_length=1000)
    attempt_count: Integer(default=0)
    max_attempts: Integer(default=3)
    permanent: Boolean(default=False)
    next_retry_at: DateTime()
    failed_at: DateTime()


def forget_delivery(delivery_id) -> None:
    repo = current_domain.repository_for(FailedDeliveries)
    try:
        repo._dao.delete(repo.get(delivery_id))
    except ObjectNotFoundError:
        pass


@notifications.projector(projector_for=FailedDeliveries, aggregates=[DeliveryAttempt])
class FailedDeliveriesProjector:
    @on(DeliveryFailed)
    def on_delivery_failed(self, event):
        repo = current_domain.repository_for(FailedDeliveries)
        try:
            failed = repo.get(event.delivery_id)
        except ObjectNotFoundError:
            failed = FailedDeliveries(
                delivery_id=event.delivery_id,
                notification_id=event.notification_id,
                user_id=event.user_id,
                category=event.category,
                channel=event.channel,
            )

        failed.error_code = event.error_code
        failed.error_message = event.error_message
        failed.attempt_count = event.attempt_count
        failed.max_attempts = event.max_attempts
        failed.permanent = event.permanent
        failed.next_retry_at = event.next_retry_at
        failed.failed_at = event.failed_at
        repo.add(failed)

    @on(DeliveryRequeued)
    def on_delivery_requeued(self, event):
        """Remove from the queue when retried (it goes back to QUEUED)."""
        forget_delivery(event.delivery_id)

"""Retry handler: re-attempts FAILED deliveries within their attempt budget."""

from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from notifications.delivery.delivery import DeliveryAttempt, DeliveryChannel, DeliveryStatus
from notifications.delivery.dispatcher import DeliveryDispatcher
from notifications.errors import InvalidTransition
from notifications.notification.notification import Notification
from notifications.preference.resolver import resolve_channels
from notifications.preference.service import PreferenceService
from notifications.utils.query import fetch_all

logger = structlog.get_logger(__name__)

OPTED_OUT = "user_opted_out"


class RetryHandler:
    def __init__(self, dispatcher: DeliveryDispatcher, preferences: PreferenceService):
        self.dispatcher = dispatcher
        self.preferences = preferences

    def retry(self, delivery_id) -> DeliveryAttempt:
        """Re-attempt a FAILED delivery.

        Attempts that used up their budget are returned unchanged, still
        FAILED. Preferences are resolved again first: if the user has since
        opted out of the channel the attempt fails for good with
        ``user_opted_out`` and no provider is called. Any other status
        raises ``InvalidTransition``.
        """
        repo = current_domain.repository_for(DeliveryAttempt)
        attempt = repo.get(delivery_id)

        if DeliveryStatus(attempt.status) != DeliveryStatus.FAILED:
            raise InvalidTransition({"status": [f"Only failed deliveries can be retried, not {attempt.status}"]})

        if not attempt.can_retry:
            logger.info(
                "Retry skipped, attempts exhausted",
                delivery_id=str(attempt.id),
                attempt_count=attempt.attempt_count,
                max_attempts=attempt.max_attempts,
            )
            return attempt

        notification_repo = current_domain.repository_for(Notification)
        notification = notification_repo.get(attempt.notification_id)
        preferences = self.preferences.load_for_update(attempt.user_id)

        resolution = resolve_channels(preferences, attempt.category, self.dispatcher.settings.fallback_category)
        if DeliveryChannel(attempt.channel) not in resolution.channels:
            attempt.abandon(OPTED_OUT, resolution.reason or f"{attempt.channel} is disabled for {attempt.category}")
            repo.add(attempt)
            logger.info(
                "Retry abandoned, user opted out",
                delivery_id=str(attempt.id),
                channel=attempt.channel,
                reason=attempt.error_message,
            )
            return attempt

        attempt.requeue()
        self.dispatcher.redeliver(attempt, notification, preferences)
        repo.add(attempt)

        notification.record_retry()
        notification_repo.add(notification)

        logger.info(
            "Delivery retried",
            delivery_id=str(attempt.id),
            channel=attempt.channel,
            status=attempt.status,
            attempt_count=attempt.attempt_count,
        )
        return attempt

    def retry_due(self, as_of=None) -> list[DeliveryAttempt]:
        """Retry every FAILED attempt whose ``next_retry_at`` has passed.

        Attempts closed because the user opted out are not returned.
        """
        as_of = as_of or datetime.now(UTC)
        repo = current_domain.repository_for(DeliveryAttempt)
        failed = fetch_all(repo, status=DeliveryStatus.FAILED.value)

        retried = []
        for attempt in failed:
            if not attempt.retry_due(as_of):
                continue
            try:
                result = self.retry(attempt.id)
            except Exception as exc:
                logger.error("Scheduled retry failed", delivery_id=str(attempt.id), error=str(exc))
                continue
            if result.error_code != OPTED_OUT:
                retried.append(result)
        return retried

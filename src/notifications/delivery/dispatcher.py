"""Delivery dispatcher: one DeliveryAttempt per resolved channel.

Provider calls run in parallel on a thread pool; everything that touches
the repository stays on the calling thread, inside its domain context. A
failing channel is recorded on its own attempt and never affects the
others.
"""

from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from protean.utils.globals import current_domain

from notifications.channel import ChannelAdapters
from notifications.config import NotificationSettings
from notifications.delivery.content import ChannelContent, build_content
from notifications.delivery.delivery import DeliveryAttempt, DeliveryChannel, DeliveryStatus
from notifications.errors import ChannelUnavailable, ProviderError
from notifications.notification.notification import Notification
from notifications.preference.preference import NotificationPreference
from notifications.preference.service import PreferenceService
from notifications.realtime.fanout import DELIVERY_STATUS, NOTIFICATION, FanoutService

logger = structlog.get_logger(__name__)


@dataclass
class SendOutcome:
    ok: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False
    invalid_tokens: list[str] = field(default_factory=list)


def _address_for(channel: DeliveryChannel, preferences: NotificationPreference):
    """Where to reach the user on ``channel``; raises ChannelUnavailable if nowhere."""
    if channel == DeliveryChannel.EMAIL:
        if not preferences.primary_email:
            raise ChannelUnavailable("No email address on file")
        if not preferences.email_verified:
            raise ChannelUnavailable("Email address is not verified")
        return preferences.primary_email
    if channel == DeliveryChannel.PUSH:
        tokens = preferences.device_token_list
        if not tokens:
            raise ChannelUnavailable("No registered devices")
        return tokens
    if channel == DeliveryChannel.SMS:
        if not preferences.phone_number:
            raise ChannelUnavailable("No phone number on file")
        if not preferences.phone_verified:
            raise ChannelUnavailable("Phone number is not verified")
        return preferences.phone_number
    return str(preferences.user_id)


def _describe(address) -> str:
    if isinstance(address, list):
        return f"{len(address)} device(s)"
    return str(address)


def notification_payload(notification: Notification) -> dict:
    """The shape pushed to connected clients."""
    return {
        "notification_id": str(notification.id),
        "category": notification.category,
        "title": notification.title,
        "body": notification.body,
        "data": notification.payload_data,
        "status": notification.status,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


class DeliveryDispatcher:
    def __init__(
        self,
        adapters: ChannelAdapters,
        preferences: PreferenceService,
        fanout: FanoutService,
        settings: NotificationSettings,
        executor: Executor | None = None,
    ):
        self.adapters = adapters
        self.preferences = preferences
        self.fanout = fanout
        self.settings = settings
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.dispatch_workers, thread_name_prefix="notification-dispatch"
        )

    # -------------------------------------------------------------------
    # Provider calls (worker threads)
    # -------------------------------------------------------------------
    def _send(self, channel: DeliveryChannel, address, content: ChannelContent, data: dict) -> SendOutcome:
        adapter = self.adapters.for_channel(channel)
        try:
            if channel == DeliveryChannel.EMAIL:
                result = adapter.send(
                    to=address, subject=content.subject, body=content.body, html_body=content.html_body
                )
            elif channel == DeliveryChannel.PUSH:
                result = adapter.send(device_tokens=address, title=content.subject, body=content.body, data=data)
            elif channel == DeliveryChannel.SMS:
                result = adapter.send(to=address, body=content.body)
            else:
                return SendOutcome(ok=False, error_code="unknown_channel", error_message=f"Unknown channel: {channel}")
        except ProviderError as exc:
            return SendOutcome(ok=False, error_code=exc.error_code, error_message=str(exc), retryable=exc.retryable)
        except Exception as exc:
            return SendOutcome(ok=False, error_code="transport_error", error_message=str(exc), retryable=True)

        invalid_tokens = list(result.get("invalid_tokens") or [])
        if result.get("status") == "sent":
            return SendOutcome(ok=True, message_id=result.get("message_id"), invalid_tokens=invalid_tokens)
        return SendOutcome(
            ok=False,
            error_code=result.get("error_code") or "provider_error",
            error_message=result.get("error") or "Unknown dispatch error",
            retryable=result.get("error_code") != "unregistered",
            invalid_tokens=invalid_tokens,
        )

    # -------------------------------------------------------------------
    # Recording (calling thread)
    # -------------------------------------------------------------------
    def _next_retry_at(self, attempt: DeliveryAttempt, outcome: SendOutcome):
        if not outcome.retryable or attempt.attempt_count >= attempt.max_attempts:
            return None
        return datetime.now(UTC) + timedelta(seconds=self.settings.retry_delay_for(attempt.attempt_count))

    def apply_outcome(self, attempt: DeliveryAttempt, outcome: SendOutcome) -> None:
        """Record a provider result on the attempt."""
        if outcome.ok:
            attempt.advance_to(DeliveryStatus.SENT, provider_message_id=outcome.message_id)
            return

        attempt.record_failure(
            outcome.error_code,
            outcome.error_message,
            next_retry_at=self._next_retry_at(attempt, outcome),
        )
        logger.warning(
            "Delivery attempt failed",
            delivery_id=str(attempt.id),
            notification_id=str(attempt.notification_id),
            channel=attempt.channel,
            error_code=outcome.error_code,
            error=outcome.error_message,
            attempt_count=attempt.attempt_count,
            next_retry_at=str(attempt.next_retry_at) if attempt.next_retry_at else None,
        )

    def _record_unavailable(self, attempt: DeliveryAttempt, exc: ChannelUnavailable) -> None:
        attempt.record_failure(ChannelUnavailable.error_code, str(exc))
        logger.info(
            "Channel unavailable for user",
            notification_id=str(attempt.notification_id),
            channel=attempt.channel,
            reason=str(exc),
        )

    def _prune_tokens(self, user_id, outcomes: list[SendOutcome]) -> None:
        stale = sorted({token for outcome in outcomes for token in outcome.invalid_tokens})
        if not stale:
            return
        try:
            self.preferences.remove_device_tokens(user_id, stale, reason="unregistered")
        except Exception as exc:
            logger.error("Stale device token pruning failed", user_id=str(user_id), count=len(stale), error=str(exc))

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def dispatch(
        self,
        notification: Notification,
        channels: set[DeliveryChannel],
        preferences: NotificationPreference,
    ) -> list[DeliveryAttempt]:
        """Create and send one attempt per channel; returns the persisted attempts."""
        repo = current_domain.repository_for(DeliveryAttempt)
        data = {"notification_id": str(notification.id), "category": notification.category}

        attempts: list[DeliveryAttempt] = []
        pending = []

        for channel in sorted(channels, key=lambda c: c.value):
            attempt = DeliveryAttempt.create(
                notification_id=str(notification.id),
                user_id=str(notification.user_id),
                category=notification.category,
                channel=channel.value,
                max_attempts=self.settings.max_delivery_attempts,
            )
            attempts.append(attempt)
            attempt.begin_attempt()

            try:
                address = _address_for(channel, preferences)
            except ChannelUnavailable as exc:
                self._record_unavailable(attempt, exc)
                continue

            attempt.recipient_address = _describe(address)
            if channel == DeliveryChannel.IN_APP:
                attempt.advance_to(DeliveryStatus.DELIVERED)
                continue

            content = build_content(notification, channel)
            pending.append((attempt, self.executor.submit(self._send, channel, address, content, data)))

        outcomes = []
        for attempt, future in pending:
            outcome = future.result()
            outcomes.append(outcome)
            self.apply_outcome(attempt, outcome)

        for attempt in attempts:
            repo.add(attempt)

        self._prune_tokens(notification.user_id, outcomes)

        logger.info(
            "Notification dispatched",
            notification_id=str(notification.id),
            user_id=str(notification.user_id),
            channels=[a.channel for a in attempts],
            failed=[a.channel for a in attempts if DeliveryStatus(a.status) == DeliveryStatus.FAILED],
        )
        return attempts

    def publish_in_app(self, notification: Notification) -> None:
        self.fanout.publish_to_user(str(notification.user_id), NOTIFICATION, notification_payload(notification))

    # -------------------------------------------------------------------
    # Redelivery
    # -------------------------------------------------------------------
    def redeliver(
        self,
        attempt: DeliveryAttempt,
        notification: Notification,
        preferences: NotificationPreference,
    ) -> DeliveryAttempt:
        """Call the provider again for an attempt the retry handler requeued."""
        channel = DeliveryChannel(attempt.channel)
        attempt.begin_attempt()

        try:
            address = _address_for(channel, preferences)
        except ChannelUnavailable as exc:
            self._record_unavailable(attempt, exc)
            return attempt

        attempt.recipient_address = _describe(address)
        if channel == DeliveryChannel.IN_APP:
            attempt.advance_to(DeliveryStatus.DELIVERED)
            return attempt

        content = build_content(notification, channel)
        data = {"notification_id": str(notification.id), "category": notification.category}
        outcome = self.executor.submit(self._send, channel, address, content, data).result()

        self.apply_outcome(attempt, outcome)
        self._prune_tokens(notification.user_id, [outcome])

        self.fanout.publish_to_user(
            str(attempt.user_id),
            DELIVERY_STATUS,
            {"delivery_id": str(attempt.id), "notification_id": str(attempt.notification_id), "status": attempt.status},
        )
        return attempt

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True)

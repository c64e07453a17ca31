"""NotificationOrchestrator: the public operations of the notifications service.

Admission (validation, rate limit) happens before anything is persisted
and is the only place errors reach the caller. Once a notification is
persisted, per-channel problems are recorded on DeliveryAttempts and
``create_and_send`` still returns the notification.
"""

from collections import Counter
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from notifications.analytics.aggregator import AnalyticsAggregator
from notifications.channel import ChannelAdapters
from notifications.config import NotificationSettings
from notifications.delivery.delivery import DeliveryAttempt, DeliveryChannel, DeliveryStatus
from notifications.delivery.dispatcher import DeliveryDispatcher, SendOutcome
from notifications.delivery.retry import RetryHandler
from notifications.errors import NotFound, RateLimitExceeded
from notifications.notification.notification import (
    Notification,
    NotificationStatus,
    parse_category,
)
from notifications.notification.rate_limiter import RateLimiter
from notifications.notification.scheduler import NotificationScheduler
from notifications.preference.patch import PreferencesPatch
from notifications.preference.preference import NotificationPreference
from notifications.preference.resolver import is_quiet_hours, quiet_hours_end, resolve_channels
from notifications.preference.service import PreferenceService
from notifications.projections.failed_deliveries import FailedDeliveries, forget_delivery
from notifications.projections.scheduled_notifications import release_entry
from notifications.realtime.broker import FanoutBroker
from notifications.realtime.fanout import (
    DELIVERY_STATUS,
    NOTIFICATION_READ,
    UNREAD_COUNT,
    FanoutService,
)
from notifications.realtime.sessions import SessionRegistry
from notifications.store import KeyValueStore, bind_shared_store
from notifications.templates import get_template
from notifications.templates.management import CreateTemplate, DeleteTemplate, UpdateTemplate, find_template_by_code
from notifications.templates.template import NotificationTemplate
from notifications.utils.query import fetch_all

logger = structlog.get_logger(__name__)

UNREAD_PREFIX = "notifications:unread_count:"
MAX_PAGE_SIZE = 100


def _require_text(field, value, max_length=None):
    if value is None or not str(value).strip():
        raise ValidationError({field: [f"{field} is required"]})
    if max_length and len(value) > max_length:
        raise ValidationError({field: [f"{field} must be at most {max_length} characters"]})


def _as_utc(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class NotificationOrchestrator:
    """Composes rate limiting, preference resolution, dispatch, retry,
    scheduling, analytics and fan-out behind one service object.

    All collaborators are injected; ``notifications.bootstrap`` wires the
    defaults.
    """

    def __init__(
        self,
        settings: NotificationSettings,
        store: KeyValueStore,
        broker: FanoutBroker,
        adapters: ChannelAdapters,
        sessions: SessionRegistry | None = None,
        executor=None,
    ):
        self.settings = settings
        self.store = store
        self.broker = broker
        self.adapters = adapters
        self.sessions = sessions or SessionRegistry()

        self.rate_limiter = RateLimiter(store, settings.rate_limit, settings.rate_limit_window_seconds)
        self.preferences = PreferenceService(store, settings.preference_cache_ttl_seconds)
        self.analytics = AnalyticsAggregator(store)
        bind_shared_store(store)
        self.fanout = FanoutService(broker, self.sessions, settings.instance_id, on_invalidate=self._invalidate_unread)
        self.dispatcher = DeliveryDispatcher(adapters, self.preferences, self.fanout, settings, executor=executor)
        self.retry_handler = RetryHandler(self.dispatcher, self.preferences)
        self.scheduler = NotificationScheduler(self._deliver, self.retry_handler)

    def start(self) -> None:
        self.fanout.start()

    def close(self) -> None:
        self.dispatcher.shutdown()
        self.broker.close()
        self.store.close()

    # -------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------
    def _validate(self, category, title, message, template_id=None, data=None, scheduled_for=None):
        category = parse_category(category)
        _require_text("title", title, max_length=255)
        _require_text("message", message)
        if template_id is not None:
            get_template(template_id)
        if data is not None and not isinstance(data, dict):
            raise ValidationError({"data": ["data must be an object"]})
        if scheduled_for is not None and not isinstance(scheduled_for, datetime):
            raise ValidationError({"scheduled_for": ["scheduled_for must be a datetime"]})
        return category

    def create_and_send(
        self,
        user_id,
        category,
        title,
        message,
        template_id=None,
        data=None,
        scheduled_for=None,
        send_immediately=True,
    ) -> Notification:
        """Admit, persist and (unless held back) dispatch one notification.

        Raises ``ValidationError`` or ``RateLimitExceeded`` before anything
        is stored. Channel failures never raise.
        """
        _require_text("user_id", user_id)
        category = self._validate(category, title, message, template_id, data, scheduled_for)
        return self._admit(str(user_id), category, title, message, template_id, data, scheduled_for, send_immediately)

    def _admit(self, user_id, category, title, message, template_id, data, scheduled_for, send_immediately):
        if not self.rate_limiter.check_and_increment(user_id):
            raise RateLimitExceeded(user_id, self.rate_limiter.limit, self.rate_limiter.window_seconds)

        notification = Notification.create(
            user_id=user_id,
            category=category.value,
            title=title,
            body=message,
            template_id=template_id,
            payload=data,
            scheduled_for=scheduled_for,
        )
        current_domain.repository_for(Notification).add(notification)
        self._invalidate_unread(user_id)
        self.fanout.publish_created(user_id, {"notification_id": str(notification.id), "category": category.value})

        now = datetime.now(UTC)
        if notification.scheduled_for is not None and notification.scheduled_for > now:
            logger.info(
                "Notification scheduled",
                notification_id=str(notification.id),
                scheduled_for=str(notification.scheduled_for),
            )
            return notification
        if not send_immediately:
            return notification

        return self._deliver(notification, now)

    def send_bulk(self, user_ids, category, title, message, **options) -> list[Notification]:
        """Create one notification per distinct user.

        Shared fields are validated once; users over their rate limit are
        skipped and logged.
        """
        category = self._validate(
            category,
            title,
            message,
            options.get("template_id"),
            options.get("data"),
            options.get("scheduled_for"),
        )
        if not user_ids:
            raise ValidationError({"user_ids": ["At least one user is required"]})

        created, skipped = [], []
        for user_id in dict.fromkeys(str(u) for u in user_ids if u):
            try:
                created.append(
                    self._admit(
                        user_id,
                        category,
                        title,
                        message,
                        options.get("template_id"),
                        options.get("data"),
                        options.get("scheduled_for"),
                        options.get("send_immediately", True),
                    )
                )
            except RateLimitExceeded:
                skipped.append(user_id)

        logger.info(
            "Bulk notifications processed",
            category=category.value,
            created=len(created),
            rate_limited=len(skipped),
        )
        return created

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def _deliver(self, notification: Notification, now: datetime | None = None) -> Notification:
        """Resolve preferences, then defer, fail or dispatch the notification."""
        now = now or datetime.now(UTC)
        repo = current_domain.repository_for(Notification)
        preferences = self.preferences.get(notification.user_id)

        resolution = resolve_channels(preferences, notification.category, self.settings.fallback_category)
        if resolution.opted_out:
            notification.mark_failed(resolution.reason)
            repo.add(notification)
            logger.info(
                "Notification suppressed by preferences",
                notification_id=str(notification.id),
                reason=resolution.reason,
            )
            return notification

        if is_quiet_hours(preferences.quiet_hours, now):
            until = quiet_hours_end(preferences.quiet_hours, now) if self.settings.requeue_after_quiet_hours else None
            notification.defer(until)
            repo.add(notification)
            logger.info(
                "Notification deferred for quiet hours",
                notification_id=str(notification.id),
                deferred_until=str(until) if until else None,
            )
            return notification

        try:
            attempts = self.dispatcher.dispatch(notification, resolution.channels, preferences)
            notification.mark_sent([attempt.channel for attempt in attempts])
        except Exception as exc:
            logger.error("Notification dispatch failed", notification_id=str(notification.id), error=str(exc))
            notification.mark_failed(str(exc))
        repo.add(notification)

        if DeliveryChannel.IN_APP in resolution.channels and notification.status == NotificationStatus.SENT.value:
            self.dispatcher.publish_in_app(notification)
        return notification

    def send_now(self, notification_id) -> Notification:
        """Dispatch a PENDING notification that was created with ``send_immediately=False``."""
        notification = current_domain.repository_for(Notification).get(notification_id)
        if notification.status != NotificationStatus.PENDING.value:
            raise ValidationError({"status": [f"Notification is already {notification.status}"]})
        return self._deliver(notification)

    def process_scheduled(self, as_of=None) -> dict:
        return self.scheduler.process_due(as_of)

    # -------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------
    def _owned(self, user_id, notification_id) -> Notification:
        notification = current_domain.repository_for(Notification).get(notification_id)
        if str(notification.user_id) != str(user_id):
            raise NotFound({"_entity": f"Notification {notification_id} not found"})
        return notification

    def get_notifications(self, user_id, category=None, status=None, unread_only=False, limit=20, offset=0) -> dict:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError({"limit": [f"limit must be between 1 and {MAX_PAGE_SIZE}"]})
        if offset < 0:
            raise ValidationError({"offset": ["offset must not be negative"]})

        filters = {"user_id": str(user_id)}
        if category is not None:
            filters["category"] = parse_category(category).value
        if status is not None:
            try:
                filters["status"] = NotificationStatus(status).value
            except ValueError:
                raise ValidationError({"status": [f"Unknown status: {status}"]}) from None
        if unread_only:
            filters["is_read"] = False

        repo = current_domain.repository_for(Notification)
        page = repo._dao.query.filter(**filters).order_by("-created_at").offset(offset).limit(limit).all()
        return {"items": list(page.items), "total": page.total, "limit": limit, "offset": offset}

    def _invalidate_unread(self, user_id) -> None:
        self.store.delete(f"{UNREAD_PREFIX}{user_id}")

    def get_unread_count(self, user_id) -> int:
        key = f"{UNREAD_PREFIX}{user_id}"
        cached = self.store.get(key)
        if cached is not None:
            return int(cached)

        repo = current_domain.repository_for(Notification)
        count = repo._dao.query.filter(user_id=str(user_id), is_read=False).all().total
        self.store.set(key, str(count), self.settings.unread_count_ttl_seconds)
        return count

    def _announce_unread(self, user_id) -> None:
        self._invalidate_unread(user_id)
        self.fanout.publish_to_user(str(user_id), UNREAD_COUNT, {"unread_count": self.get_unread_count(user_id)})

    def mark_as_read(self, user_id, notification_id) -> Notification:
        notification = self._owned(user_id, notification_id)
        if notification.mark_read():
            current_domain.repository_for(Notification).add(notification)
            self.fanout.publish_to_user(
                str(user_id), NOTIFICATION_READ, {"notification_id": str(notification.id)}
            )
            self._announce_unread(user_id)
        return notification

    def mark_all_as_read(self, user_id) -> int:
        repo = current_domain.repository_for(Notification)
        unread = fetch_all(repo, user_id=str(user_id), is_read=False)

        now = datetime.now(UTC)
        marked = 0
        for notification in unread:
            if notification.mark_read(read_at=now):
                repo.add(notification)
                marked += 1

        if marked:
            self._announce_unread(user_id)
        logger.info("Notifications marked as read", user_id=str(user_id), count=marked)
        return marked

    def delete_notification(self, user_id, notification_id) -> None:
        """Delete a notification and its delivery attempts.

        Deleting a scheduled or deferred notification cancels it.
        """
        notification = self._owned(user_id, notification_id)

        attempt_repo = current_domain.repository_for(DeliveryAttempt)
        for attempt in fetch_all(attempt_repo, notification_id=str(notification.id)):
            attempt_repo._dao.delete(attempt)
            forget_delivery(attempt.id)
        release_entry(notification.id)
        current_domain.repository_for(Notification)._dao.delete(notification)

        logger.info("Notification deleted", notification_id=str(notification_id), user_id=str(user_id))
        self._announce_unread(user_id)

    # -------------------------------------------------------------------
    # Deliveries
    # -------------------------------------------------------------------
    def update_delivery_status(self, delivery_id, status, provider_fields=None) -> DeliveryAttempt:
        """Apply a provider callback to a delivery attempt.

        ``provider_fields`` may carry ``provider_message_id``, ``error_code``,
        ``error_message`` and ``occurred_at``.
        """
        try:
            target = DeliveryStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown delivery status: {status}"]}) from None

        fields = provider_fields or {}
        repo = current_domain.repository_for(DeliveryAttempt)
        attempt = repo.get(delivery_id)

        if target == DeliveryStatus.FAILED:
            self.dispatcher.apply_outcome(
                attempt,
                SendOutcome(
                    ok=False,
                    error_code=fields.get("error_code") or "provider_error",
                    error_message=fields.get("error_message") or "Failure reported by provider",
                    retryable=True,
                ),
            )
        else:
            attempt.advance_to(
                target,
                provider_message_id=fields.get("provider_message_id"),
                occurred_at=_as_utc(fields.get("occurred_at")),
            )
        repo.add(attempt)

        self.fanout.publish_to_user(
            str(attempt.user_id),
            DELIVERY_STATUS,
            {"delivery_id": str(attempt.id), "notification_id": str(attempt.notification_id), "status": attempt.status},
        )
        return attempt

    def retry_delivery(self, delivery_id) -> DeliveryAttempt:
        return self.retry_handler.retry(delivery_id)

    def get_delivery_attempts(self, notification_id) -> list[DeliveryAttempt]:
        current_domain.repository_for(Notification).get(notification_id)
        repo = current_domain.repository_for(DeliveryAttempt)
        return fetch_all(repo, order_by="channel", notification_id=str(notification_id))

    def get_delivery_stats(self, notification_id) -> dict:
        attempts = self.get_delivery_attempts(notification_id)
        by_status = Counter(attempt.status for attempt in attempts)
        return {
            "notification_id": str(notification_id),
            "total": len(attempts),
            "by_status": dict(by_status),
            "by_channel": {attempt.channel: attempt.status for attempt in attempts},
        }

    def get_failed_deliveries(self, channel=None, permanent=None, limit=20, offset=0) -> dict:
        """Page through the failed-deliveries queue, most recent failure first."""
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError({"limit": [f"limit must be between 1 and {MAX_PAGE_SIZE}"]})
        if offset < 0:
            raise ValidationError({"offset": ["offset must not be negative"]})

        filters = {}
        if channel is not None:
            try:
                filters["channel"] = DeliveryChannel(channel).value
            except ValueError:
                raise ValidationError({"channel": [f"Unknown delivery channel: {channel}"]}) from None
        if permanent is not None:
            filters["permanent"] = bool(permanent)

        query = current_domain.repository_for(FailedDeliveries)._dao.query
        if filters:
            query = query.filter(**filters)
        page = query.order_by("-failed_at").offset(offset).limit(limit).all()
        return {"items": list(page.items), "total": page.total, "limit": limit, "offset": offset}

    # -------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------
    def get_user_preferences(self, user_id) -> NotificationPreference:
        return self.preferences.get(user_id)

    def update_user_preferences(self, user_id, patch: dict | PreferencesPatch) -> NotificationPreference:
        return self.preferences.update(user_id, patch)

    def add_device_token(self, user_id, token) -> NotificationPreference:
        return self.preferences.add_device_token(user_id, token)

    def remove_device_token(self, user_id, token) -> NotificationPreference:
        return self.preferences.remove_device_token(user_id, token)

    def unsubscribe_from_category(self, user_id, category) -> NotificationPreference:
        return self.preferences.unsubscribe_from_category(user_id, parse_category(category))

    def subscribe_to_category(self, user_id, category) -> NotificationPreference:
        return self.preferences.subscribe_to_category(user_id, parse_category(category))

    def unsubscribe_from_all(self, user_id) -> NotificationPreference:
        return self.preferences.unsubscribe_from_all(user_id)

    def verify_email(self, user_id) -> NotificationPreference:
        return self.preferences.verify_email(user_id)

    def verify_phone(self, user_id) -> NotificationPreference:
        return self.preferences.verify_phone(user_id)

    # -------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------
    def create_template(
        self, code, name, category, content: dict, variables=None, default_data=None, enabled=True
    ) -> NotificationTemplate:
        command = CreateTemplate(
            code=code,
            name=name,
            category=parse_category(category).value,
            content=content,
            variables=variables or [],
            default_data=default_data or {},
            enabled=enabled,
        )
        template_id = current_domain.process(command, asynchronous=False)
        return self.get_template_by_id(template_id)

    def update_template(self, template_id, changes: dict) -> NotificationTemplate:
        """Change a template's content, category or ``enabled`` flag; ``code`` is fixed."""
        current_domain.process(UpdateTemplate(template_id=template_id, changes=changes), asynchronous=False)
        return self.get_template_by_id(template_id)

    def delete_template(self, template_id) -> None:
        current_domain.process(DeleteTemplate(template_id=template_id), asynchronous=False)

    def get_template_by_id(self, template_id) -> NotificationTemplate:
        return current_domain.repository_for(NotificationTemplate).get(template_id)

    def get_template_by_code(self, code) -> NotificationTemplate:
        """Only enabled templates are returned."""
        template = find_template_by_code(code, enabled_only=True)
        if template is None:
            raise NotFound({"_entity": f"Template {code} not found"})
        return template

    def list_templates(self, category=None) -> list[NotificationTemplate]:
        """Enabled templates ordered by code, optionally for one category."""
        filters = {"enabled": True}
        if category is not None:
            filters["category"] = parse_category(category).value
        return fetch_all(current_domain.repository_for(NotificationTemplate), order_by="code", **filters)

    # -------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------
    def get_analytics_summary(self, date_from=None, date_to=None) -> dict:
        return self.analytics.get_summary(date_from, date_to)

    def get_category_breakdown(self, date_from=None, date_to=None) -> dict:
        return self.analytics.get_category_breakdown(date_from, date_to)

    def get_analytics(self, date_from=None, date_to=None, category=None, channel=None) -> list:
        return self.analytics.get_analytics(date_from, date_to, category, channel)

    # -------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------
    def health_details(self) -> dict:
        return {
            "store": self.store.ping(),
            "broker": self.broker.ping(),
            "email": self.adapters.email.health_check(),
        }

    def health_check(self) -> bool:
        return all(self.health_details().values())

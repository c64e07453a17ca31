"""Pydantic request/response models for the Notifications API.

API schemas are separate from the domain aggregates (anti-corruption pattern).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from notifications.delivery.delivery import DeliveryAttempt
from notifications.notification.notification import Notification
from notifications.preference.preference import CATEGORY_FIELDS, NotificationPreference
from notifications.projections.failed_deliveries import FailedDeliveries
from notifications.templates.template import NotificationTemplate


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------
class CreateNotificationRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    category: str = Field(..., examples=["EventReminder"])
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    template_id: str | None = Field(default=None, examples=["event_reminder"])
    data: dict[str, Any] | None = None
    scheduled_for: datetime | None = None
    send_immediately: bool = True


class BulkNotificationRequest(BaseModel):
    user_ids: list[str] = Field(..., min_length=1)
    category: str = Field(..., examples=["SystemAlert"])
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    template_id: str | None = None
    data: dict[str, Any] | None = None
    scheduled_for: datetime | None = None


class DeliveryStatusUpdateRequest(BaseModel):
    status: str = Field(..., examples=["Delivered"])
    provider_message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    occurred_at: datetime | None = None


class DeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=4096)


class ProcessScheduledRequest(BaseModel):
    as_of: datetime | None = None


class CreateTemplateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=100, examples=["spring_sale"])
    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., examples=["Marketing"])
    description: str | None = None
    email_subject: str = Field(..., min_length=1, max_length=255)
    email_body: str = Field(..., min_length=1)
    push_title: str = Field(..., min_length=1, max_length=255)
    push_message: str = Field(..., min_length=1)
    in_app_title: str | None = Field(default=None, max_length=255)
    in_app_message: str | None = None
    sms_body: str | None = None
    variables: list[str] = Field(default_factory=list)
    default_data: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True

    def content(self) -> dict:
        """The per-channel text, without empty optional parts."""
        return self.model_dump(
            exclude={"code", "name", "category", "variables", "default_data", "enabled"}, exclude_none=True
        )


class UpdateTemplateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = None
    description: str | None = None
    email_subject: str | None = Field(default=None, min_length=1, max_length=255)
    email_body: str | None = Field(default=None, min_length=1)
    push_title: str | None = Field(default=None, min_length=1, max_length=255)
    push_message: str | None = Field(default=None, min_length=1)
    in_app_title: str | None = Field(default=None, max_length=255)
    in_app_message: str | None = None
    sms_body: str | None = None
    variables: list[str] | None = None
    default_data: dict[str, Any] | None = None
    enabled: bool | None = None


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class NotificationResponse(BaseModel):
    notification_id: str
    user_id: str
    category: str
    title: str
    message: str
    template_id: str | None = None
    data: dict[str, Any] = {}
    status: str
    channels: list[str] = []
    failure_reason: str | None = None
    is_read: bool
    read_at: datetime | None = None
    scheduled_for: datetime | None = None
    deferred_until: datetime | None = None
    sent_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_aggregate(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            notification_id=str(notification.id),
            user_id=str(notification.user_id),
            category=notification.category,
            title=notification.title,
            message=notification.body,
            template_id=notification.template_id,
            data=notification.payload_data,
            status=notification.status,
            channels=notification.channel_list,
            failure_reason=notification.failure_reason,
            is_read=bool(notification.is_read),
            read_at=notification.read_at,
            scheduled_for=notification.scheduled_for,
            deferred_until=notification.deferred_until,
            sent_at=notification.sent_at,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    limit: int
    offset: int


class BulkNotificationResponse(BaseModel):
    created: int
    notification_ids: list[str]


class UnreadCountResponse(BaseModel):
    user_id: str
    unread_count: int


class MarkAllReadResponse(BaseModel):
    marked: int


class DeliveryAttemptResponse(BaseModel):
    delivery_id: str
    notification_id: str
    channel: str
    status: str
    recipient_address: str | None = None
    provider_message_id: str | None = None
    attempt_count: int
    max_attempts: int
    next_retry_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    opened_at: datetime | None = None
    clicked_at: datetime | None = None
    failed_at: datetime | None = None
    bounced_at: datetime | None = None

    @classmethod
    def from_aggregate(cls, attempt: DeliveryAttempt) -> "DeliveryAttemptResponse":
        return cls(
            delivery_id=str(attempt.id),
            notification_id=str(attempt.notification_id),
            channel=attempt.channel,
            status=attempt.status,
            recipient_address=attempt.recipient_address,
            provider_message_id=attempt.provider_message_id,
            attempt_count=attempt.attempt_count or 0,
            max_attempts=attempt.max_attempts,
            next_retry_at=attempt.next_retry_at,
            error_code=attempt.error_code,
            error_message=attempt.error_message,
            sent_at=attempt.sent_at,
            delivered_at=attempt.delivered_at,
            opened_at=attempt.opened_at,
            clicked_at=attempt.clicked_at,
            failed_at=attempt.failed_at,
            bounced_at=attempt.bounced_at,
        )


class DeliveryStatsResponse(BaseModel):
    notification_id: str
    total: int
    by_status: dict[str, int]
    by_channel: dict[str, str]


class FailedDeliveryResponse(BaseModel):
    delivery_id: str
    notification_id: str
    user_id: str
    category: str
    channel: str
    error_code: str | None = None
    error_message: str | None = None
    attempt_count: int
    max_attempts: int
    permanent: bool
    next_retry_at: datetime | None = None
    failed_at: datetime | None = None

    @classmethod
    def from_projection(cls, failed: FailedDeliveries) -> "FailedDeliveryResponse":
        return cls(
            delivery_id=str(failed.delivery_id),
            notification_id=str(failed.notification_id),
            user_id=str(failed.user_id),
            category=failed.category,
            channel=failed.channel,
            error_code=failed.error_code,
            error_message=failed.error_message,
            attempt_count=failed.attempt_count or 0,
            max_attempts=failed.max_attempts,
            permanent=bool(failed.permanent),
            next_retry_at=failed.next_retry_at,
            failed_at=failed.failed_at,
        )


class FailedDeliveryListResponse(BaseModel):
    items: list[FailedDeliveryResponse]
    total: int
    limit: int
    offset: int


def _toggles(value) -> dict[str, bool] | None:
    if value is None:
        return None
    return {"email": value.email, "push": value.push, "in_app": value.in_app, "sms": value.sms}


class TemplateResponse(BaseModel):
    template_id: str
    code: str
    name: str
    category: str
    description: str | None = None
    email_subject: str
    email_body: str
    push_title: str
    push_message: str
    in_app_title: str | None = None
    in_app_message: str | None = None
    sms_body: str | None = None
    variables: list[str]
    default_data: dict[str, Any]
    enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_aggregate(cls, template: NotificationTemplate) -> "TemplateResponse":
        return cls(
            template_id=str(template.id),
            code=template.code,
            name=template.name,
            category=template.category,
            description=template.description,
            email_subject=template.email_subject,
            email_body=template.email_body,
            push_title=template.push_title,
            push_message=template.push_message,
            in_app_title=template.in_app_title,
            in_app_message=template.in_app_message,
            sms_body=template.sms_body,
            variables=template.variable_names,
            default_data=template.defaults,
            enabled=bool(template.enabled),
            created_at=template.created_at,
            updated_at=template.updated_at,
        )


class QuietHoursResponse(BaseModel):
    enabled: bool = False
    start: str | None = None
    end: str | None = None
    timezone: str = "UTC"


class PreferencesResponse(BaseModel):
    user_id: str
    notifications_enabled: bool
    unsubscribed_from_all: bool
    unsubscribed_categories: list[str] = []
    default_channels: dict[str, bool] | None = None
    categories: dict[str, dict[str, bool] | None] = {}
    quiet_hours: QuietHoursResponse
    primary_email: str | None = None
    email_verified: bool = False
    phone_number: str | None = None
    phone_verified: bool = False
    device_token_count: int = 0
    language: str
    timezone: str

    @classmethod
    def from_aggregate(cls, preference: NotificationPreference) -> "PreferencesResponse":
        quiet_hours = preference.quiet_hours
        return cls(
            user_id=str(preference.user_id),
            notifications_enabled=bool(preference.notifications_enabled),
            unsubscribed_from_all=bool(preference.unsubscribed_from_all),
            unsubscribed_categories=preference.unsubscribed_category_list,
            default_channels=_toggles(preference.default_channels),
            categories={field: _toggles(getattr(preference, field)) for field in CATEGORY_FIELDS.values()},
            quiet_hours=QuietHoursResponse(
                enabled=bool(quiet_hours.enabled),
                start=quiet_hours.start,
                end=quiet_hours.end,
                timezone=quiet_hours.timezone or "UTC",
            )
            if quiet_hours
            else QuietHoursResponse(),
            primary_email=preference.primary_email,
            email_verified=bool(preference.email_verified),
            phone_number=preference.phone_number,
            phone_verified=bool(preference.phone_verified),
            device_token_count=len(preference.device_token_list),
            language=preference.language or "en-US",
            timezone=preference.timezone or "UTC",
        )


class ProcessScheduledResponse(BaseModel):
    released: int
    deferred: int = 0
    retried: int


class HealthResponse(BaseModel):
    status: str
    checks: dict[str, bool]

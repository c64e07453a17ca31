"""Boundary validation for preference patches.

Unknown keys are rejected instead of being stored. Pydantic errors are
re-raised as Protean ``ValidationError`` so every caller sees one error type.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from protean.exceptions import ValidationError

from notifications.notification.notification import NotificationCategory
from notifications.preference.preference import is_valid_timezone

_HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class _Patch(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ChannelTogglesPatch(_Patch):
    email: bool | None = None
    push: bool | None = None
    in_app: bool | None = None
    sms: bool | None = None


class CategoryPreferencesPatch(_Patch):
    event_reminder: ChannelTogglesPatch | None = None
    ticket_sale: ChannelTogglesPatch | None = None
    review: ChannelTogglesPatch | None = None
    system_alert: ChannelTogglesPatch | None = None
    marketing: ChannelTogglesPatch | None = None
    invitation: ChannelTogglesPatch | None = None
    comment: ChannelTogglesPatch | None = None
    follower: ChannelTogglesPatch | None = None


class QuietHoursPatch(_Patch):
    enabled: bool | None = None
    start: str | None = Field(default=None, pattern=_HHMM_PATTERN, examples=["22:00"])
    end: str | None = Field(default=None, pattern=_HHMM_PATTERN, examples=["07:00"])
    timezone: str | None = Field(default=None, examples=["Europe/Berlin"])

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value):
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value


class PreferencesPatch(_Patch):
    notifications_enabled: bool | None = None
    unsubscribed_from_all: bool | None = None
    default_channels: ChannelTogglesPatch | None = None
    categories: CategoryPreferencesPatch | None = None
    quiet_hours: QuietHoursPatch | None = None
    unsubscribed_categories: list[NotificationCategory] | None = None
    primary_email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=254)
    phone_number: str | None = Field(default=None, pattern=r"^\+?[\d\s\-()]{6,20}$")
    language: str | None = Field(default=None, min_length=2, max_length=10)
    timezone: str | None = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value):
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value


def parse_patch(data: dict | PreferencesPatch) -> dict:
    """Validate ``data`` and return only the keys the caller actually set."""
    if isinstance(data, PreferencesPatch):
        patch = data
    else:
        try:
            patch = PreferencesPatch.model_validate(data or {})
        except PydanticValidationError as exc:
            errors: dict[str, list[str]] = {}
            for error in exc.errors():
                field = ".".join(str(part) for part in error["loc"]) or "preferences"
                errors.setdefault(field, []).append(error["msg"])
            raise ValidationError(errors) from None

    return patch.model_dump(exclude_unset=True, mode="json")

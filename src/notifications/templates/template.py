"""NotificationTemplate aggregate: per-channel content managed at runtime.

Stored templates are looked up by ``code`` wherever a notification names a
``template_id``; an enabled stored template takes precedence over a
built-in one with the same id.
"""

import json
import re
from datetime import UTC, datetime

from notifications.domain import notifications
from notifications.notification.notification import parse_category
from notifications.templates.base import fill
from notifications.templates.events import TemplateCreated, TemplateUpdated
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, String, Text

_CODE = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")

REQUIRED_CONTENT = ("email_subject", "email_body", "push_title", "push_message")
OPTIONAL_CONTENT = ("description", "in_app_title", "in_app_message", "sms_body", "created_by")
EDITABLE_FIELDS = ("name", "category", "enabled", "variables", "default_data", *REQUIRED_CONTENT, *OPTIONAL_CONTENT)


def _encode_variables(value) -> str:
    if not isinstance(value, list | tuple) or not all(isinstance(name, str) and name for name in value):
        raise ValidationError({"variables": ["variables must be a list of names"]})
    return json.dumps(list(value))


def _encode_defaults(value) -> str:
    if not isinstance(value, dict):
        raise ValidationError({"default_data": ["default_data must be an object"]})
    return json.dumps(value)


@notifications.aggregate
class NotificationTemplate:
    """Named, categorised content for email, push, in-app and SMS.

    ``variables`` documents the placeholders the content uses and
    ``default_data`` supplies values for those the notification omits.
    """

    code: String(required=True, max_length=100, unique=True)
    name: String(required=True, max_length=255)
    description: Text()
    category: String(required=True, max_length=50)
    email_subject: String(required=True, max_length=255)
    email_body: Text(required=True)
    push_title: String(required=True, max_length=255)
    push_message: Text(required=True)
    in_app_title: String(max_length=255)
    in_app_message: Text()
    sms_body: Text()
    variables: Text()  # JSON list of placeholder names
    default_data: Text()  # JSON object
    enabled: Boolean(default=True)
    created_by: String(max_length=255)
    created_at: DateTime()
    updated_at: DateTime()

    @classmethod
    def create(cls, code, name, category, variables=None, default_data=None, enabled=True, **content):
        if not code or not _CODE.match(code):
            raise ValidationError(
                {"code": ["code must be lowercase letters, digits, '_', '.' or '-', starting with a letter or digit"]}
            )
        unknown = set(content) - set(REQUIRED_CONTENT) - set(OPTIONAL_CONTENT)
        if unknown:
            raise ValidationError({field: ["Unknown template field"] for field in sorted(unknown)})

        now = datetime.now(UTC)
        template = cls(
            code=code,
            name=name,
            category=parse_category(category).value,
            variables=_encode_variables(variables or []),
            default_data=_encode_defaults(default_data or {}),
            enabled=bool(enabled),
            created_at=now,
            updated_at=now,
            **content,
        )
        template.raise_(
            TemplateCreated(
                template_id=str(template.id),
                code=template.code,
                category=template.category,
                created_at=now,
            )
        )
        return template

    def update(self, changes: dict) -> list[str]:
        """Apply ``changes`` to the editable fields; returns the names that changed.

        ``code`` cannot be changed. ``None`` values are ignored.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError({field: ["Field cannot be updated"] for field in sorted(unknown)})

        changed = []
        for field_name in EDITABLE_FIELDS:
            value = changes.get(field_name)
            if value is None:
                continue
            if field_name == "category":
                value = parse_category(value).value
            elif field_name == "variables":
                value = _encode_variables(value)
            elif field_name == "default_data":
                value = _encode_defaults(value)
            elif field_name == "enabled":
                value = bool(value)
            if getattr(self, field_name) != value:
                setattr(self, field_name, value)
                changed.append(field_name)

        if changed:
            self.updated_at = datetime.now(UTC)
            self.raise_(
                TemplateUpdated(
                    template_id=str(self.id),
                    code=self.code,
                    changed_fields=json.dumps(changed),
                    updated_at=self.updated_at,
                )
            )
        return changed

    @property
    def variable_names(self) -> list[str]:
        return json.loads(self.variables) if self.variables else []

    @property
    def defaults(self) -> dict:
        return json.loads(self.default_data) if self.default_data else {}

    def render(self, variables: dict) -> dict:
        """Fill every channel's content; ``variables`` win over ``default_data``.

        In-app content falls back to the push title and message.
        """
        values = {**self.defaults, **{k: v for k, v in variables.items() if v is not None}}
        title = fill(self.push_title, values)
        message = fill(self.push_message, values)
        return {
            "subject": fill(self.email_subject, values),
            "html": fill(self.email_body, values),
            "title": title,
            "message": message,
            "in_app_title": fill(self.in_app_title, values) or title,
            "in_app_message": fill(self.in_app_message, values) or message,
            "sms": fill(self.sms_body, values),
        }

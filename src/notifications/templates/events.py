"""Domain events for the NotificationTemplate aggregate."""

from notifications.domain import notifications
from protean.fields import DateTime, Identifier, String


@notifications.event(part_of="NotificationTemplate")
class TemplateCreated:
    """A template was stored and can be referenced by its code."""

    __version__ = 1

    template_id: Identifier(required=True)
    code: String(required=True)
    category: String(required=True)
    created_at: DateTime(required=True)


@notifications.event(part_of="NotificationTemplate")
class TemplateUpdated:
    __version__ = 1

    template_id: Identifier(required=True)
    code: String(required=True)
    changed_fields: String(required=True)  # JSON list of field names
    updated_at: DateTime(required=True)

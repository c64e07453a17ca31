"""Template lookup: stored templates first, then the built-in registry.

Each template carries per-channel content with ``{{placeholder}}``
variables that the dispatcher fills from the notification payload.
"""

from protean.exceptions import ValidationError

from notifications.templates.base import BuiltinTemplate, fill
from notifications.templates.event_invitation import EventInvitationTemplate
from notifications.templates.event_reminder import EventReminderTemplate
from notifications.templates.management import find_template_by_code
from notifications.templates.new_follower import NewFollowerTemplate
from notifications.templates.review_received import ReviewReceivedTemplate
from notifications.templates.template import NotificationTemplate
from notifications.templates.ticket_purchase import TicketPurchaseTemplate

TEMPLATE_REGISTRY: dict[str, type[BuiltinTemplate]] = {
    template.template_id: template
    for template in (
        EventReminderTemplate,
        TicketPurchaseTemplate,
        ReviewReceivedTemplate,
        EventInvitationTemplate,
        NewFollowerTemplate,
    )
}


def get_template(template_id: str) -> NotificationTemplate | type[BuiltinTemplate]:
    """Resolve a template id to something with a ``render(variables)`` method.

    An enabled stored template with a matching ``code`` wins over the
    built-in template of the same id.
    """
    stored = find_template_by_code(template_id, enabled_only=True)
    if stored is not None:
        return stored
    template_cls = TEMPLATE_REGISTRY.get(template_id)
    if template_cls is None:
        raise ValidationError({"template_id": [f"Unknown template: {template_id}"]})
    return template_cls


__all__ = ["TEMPLATE_REGISTRY", "BuiltinTemplate", "NotificationTemplate", "fill", "get_template"]

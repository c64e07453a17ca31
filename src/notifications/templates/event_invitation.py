"""Event invitation template."""

from notifications.notification.notification import NotificationCategory
from notifications.templates.base import BuiltinTemplate


class EventInvitationTemplate(BuiltinTemplate):
    template_id = "event_invitation"
    category = NotificationCategory.INVITATION.value
    email_subject = "{{inviter_name}} invited you to {{event_name}}"
    email_body = (
        "<p>Hi {{first_name}},</p>"
        "<p>{{inviter_name}} invited you to <strong>{{event_name}}</strong> on {{event_date}}.</p>"
    )
    push_title = "You're invited"
    push_message = "{{inviter_name}} invited you to {{event_name}}."

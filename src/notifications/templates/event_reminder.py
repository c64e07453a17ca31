"""Event reminder template: sent ahead of an event the user is attending."""

from notifications.notification.notification import NotificationCategory
from notifications.templates.base import BuiltinTemplate


class EventReminderTemplate(BuiltinTemplate):
    template_id = "event_reminder"
    category = NotificationCategory.EVENT_REMINDER.value
    email_subject = "Reminder: {{event_name}} starts {{starts_in}}"
    email_body = (
        "<p>Hi {{first_name}},</p>"
        "<p><strong>{{event_name}}</strong> starts {{starts_in}} at {{venue}}.</p>"
        "<p>Your tickets are in the app. See you there!</p>"
    )
    push_title = "{{event_name}} starts {{starts_in}}"
    push_message = "Doors open at {{venue}}. Your tickets are ready in the app."

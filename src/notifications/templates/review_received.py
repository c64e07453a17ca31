"""Review received template: sent to an organizer when their event is reviewed."""

from notifications.notification.notification import NotificationCategory
from notifications.templates.base import BuiltinTemplate


class ReviewReceivedTemplate(BuiltinTemplate):
    template_id = "review_received"
    category = NotificationCategory.REVIEW.value
    email_subject = "New {{rating}}-star review for {{event_name}}"
    email_body = (
        "<p>{{reviewer_name}} left a {{rating}}-star review for <strong>{{event_name}}</strong>:</p>"
        "<blockquote>{{excerpt}}</blockquote>"
    )
    push_title = "New review for {{event_name}}"
    push_message = "{{reviewer_name}} rated it {{rating}} stars."

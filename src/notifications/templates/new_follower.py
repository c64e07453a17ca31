"""New follower template."""

from notifications.notification.notification import NotificationCategory
from notifications.templates.base import BuiltinTemplate


class NewFollowerTemplate(BuiltinTemplate):
    template_id = "new_follower"
    category = NotificationCategory.FOLLOWER.value
    email_subject = "{{follower_name}} started following you"
    email_body = "<p>{{follower_name}} started following you.</p>"
    push_title = "New follower"
    push_message = "{{follower_name}} started following you."

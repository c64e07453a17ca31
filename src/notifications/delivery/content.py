"""Per-channel message content for a notification."""

from dataclasses import dataclass

from notifications.delivery.delivery import DeliveryChannel
from notifications.notification.notification import Notification
from notifications.templates import get_template


@dataclass(frozen=True)
class ChannelContent:
    subject: str
    body: str
    html_body: str | None = None


def render_variables(notification: Notification) -> dict:
    return {"title": notification.title, "body": notification.body, **notification.payload_data}


def build_content(notification: Notification, channel) -> ChannelContent:
    """Render the notification for ``channel``.

    Templated notifications take their text from the template (a stored
    template may carry its own in-app and SMS text); plain ones
    use the stored title and body as-is.
    """
    channel = DeliveryChannel(channel)
    if notification.template_id:
        rendered = get_template(notification.template_id).render(render_variables(notification))
    else:
        rendered = {
            "subject": notification.title,
            "html": None,
            "title": notification.title,
            "message": notification.body,
        }

    if channel == DeliveryChannel.EMAIL:
        return ChannelContent(subject=rendered["subject"], body=rendered["message"], html_body=rendered["html"])
    if channel == DeliveryChannel.SMS:
        if rendered.get("sms"):
            return ChannelContent(subject=rendered["title"], body=rendered["sms"])
        return ChannelContent(subject=rendered["title"], body=f"{rendered['title']}: {rendered['message']}")
    if channel == DeliveryChannel.IN_APP and rendered.get("in_app_message"):
        return ChannelContent(subject=rendered["in_app_title"], body=rendered["in_app_message"])
    return ChannelContent(subject=rendered["title"], body=rendered["message"])

"""Ticket purchase template: sent when a ticket order completes."""

from notifications.notification.notification import NotificationCategory
from notifications.templates.base import BuiltinTemplate


class TicketPurchaseTemplate(BuiltinTemplate):
    template_id = "ticket_purchase"
    category = NotificationCategory.TICKET_SALE.value
    email_subject = "Your tickets for {{event_name}}"
    email_body = (
        "<p>Hi {{first_name}},</p>"
        "<p>You bought {{quantity}} ticket(s) for <strong>{{event_name}}</strong>.</p>"
        "<p>Order reference: {{order_reference}}</p>"
    )
    push_title = "Tickets confirmed"
    push_message = "{{quantity}} ticket(s) for {{event_name}} are in your wallet."

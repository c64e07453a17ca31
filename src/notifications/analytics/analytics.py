"""NotificationAnalytics: daily delivery counters per category and channel.

One row per ``"YYYY-MM-DD:<category>:<channel>"``. Channel rows hold the
delivery funnel; the ``all`` row of a category counts notifications
created and read. Rows are only ever incremented.
"""

from notifications.domain import notifications
from protean.fields import DateTime, Float, Integer, String

ALL_CHANNELS = "all"

COUNTERS = (
    "total_notifications",
    "total_sent",
    "total_delivered",
    "total_opened",
    "total_clicked",
    "total_failed",
    "total_bounced",
    "total_read",
)


def stat_key_for(date_str: str, category: str, channel: str) -> str:
    return f"{date_str}:{category}:{channel}"


def _rate(numerator: int, denominator: int) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


@notifications.projection
class NotificationAnalytics:
    stat_key: String(identifier=True, required=True)  # "YYYY-MM-DD:category:channel"
    date: String(required=True, max_length=10)
    category: String(required=True)
    channel: String(required=True)

    total_notifications: Integer(default=0)
    total_sent: Integer(default=0)
    total_delivered: Integer(default=0)
    total_opened: Integer(default=0)
    total_clicked: Integer(default=0)
    total_failed: Integer(default=0)
    total_bounced: Integer(default=0)
    total_read: Integer(default=0)

    delivery_rate: Float(default=0.0)
    open_rate: Float(default=0.0)
    click_rate: Float(default=0.0)
    failure_rate: Float(default=0.0)
    bounce_rate: Float(default=0.0)
    read_rate: Float(default=0.0)

    updated_at: DateTime()

    def recompute_rates(self):
        self.delivery_rate = _rate(self.total_delivered, self.total_sent)
        self.open_rate = _rate(self.total_opened, self.total_sent)
        self.click_rate = _rate(self.total_clicked, self.total_sent)
        self.failure_rate = _rate(self.total_failed, self.total_sent)
        self.bounce_rate = _rate(self.total_bounced, self.total_sent)
        self.read_rate = _rate(self.total_read, self.total_notifications)


def summarize(rows) -> dict:
    """Sum counters over ``rows`` and derive the same rates as a single row."""
    totals = {name: sum(getattr(row, name) or 0 for row in rows) for name in COUNTERS}
    sent = totals["total_sent"]
    totals.update(
        {
            "delivery_rate": _rate(totals["total_delivered"], sent),
            "open_rate": _rate(totals["total_opened"], sent),
            "click_rate": _rate(totals["total_clicked"], sent),
            "failure_rate": _rate(totals["total_failed"], sent),
            "bounce_rate": _rate(totals["total_bounced"], sent),
            "read_rate": _rate(totals["total_read"], totals["total_notifications"]),
        }
    )
    return totals

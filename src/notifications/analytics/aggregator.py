"""Analytics aggregator: atomic counter increments plus projection snapshots.

The ``NotificationAnalyticsProjector`` drives the increments from domain
events; the orchestrator reads through the query methods.

Counters are incremented with ``HINCRBY`` on the shared store so that
concurrent dispatches never lose updates. After each increment the
``NotificationAnalytics`` row is rewritten from the hash; a row never
moves backwards, so an older snapshot landing late cannot undo a newer one.
"""

from datetime import UTC, date, datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from notifications.analytics.analytics import (
    ALL_CHANNELS,
    COUNTERS,
    NotificationAnalytics,
    stat_key_for,
    summarize,
)
from notifications.delivery.delivery import DeliveryChannel, DeliveryStatus
from notifications.notification.notification import NotificationCategory, parse_category
from notifications.store.kv_port import KeyValueStore
from notifications.utils.query import fetch_all

logger = structlog.get_logger(__name__)

KEY_PREFIX = "notifications:analytics:"

_STATUS_COUNTERS = {
    DeliveryStatus.DELIVERED: "total_delivered",
    DeliveryStatus.OPENED: "total_opened",
    DeliveryStatus.CLICKED: "total_clicked",
    DeliveryStatus.BOUNCED: "total_bounced",
}


def _day(value=None) -> str:
    value = value or datetime.now(UTC)
    return value.strftime("%Y-%m-%d")


def _date_str(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime | date):
        return value.strftime("%Y-%m-%d")
    return str(value)


class AnalyticsAggregator:
    def __init__(self, store: KeyValueStore):
        self.store = store

    # -------------------------------------------------------------------
    # Increments
    # -------------------------------------------------------------------
    def increment(self, category, channel, counter, amount=1, on=None) -> None:
        if counter not in COUNTERS:
            raise ValueError(f"Unknown analytics counter: {counter}")

        date_str = _day(on)
        category = NotificationCategory(category).value
        channel = DeliveryChannel(channel).value if channel != ALL_CHANNELS else ALL_CHANNELS
        stat_key = stat_key_for(date_str, category, channel)

        self.store.hincrby(f"{KEY_PREFIX}{stat_key}", counter, amount)
        self._snapshot(stat_key, date_str, category, channel)

    def _snapshot(self, stat_key, date_str, category, channel) -> None:
        counts = self.store.hgetall(f"{KEY_PREFIX}{stat_key}")
        repo = current_domain.repository_for(NotificationAnalytics)

        try:
            row = repo.get(stat_key)
        except ObjectNotFoundError:
            row = NotificationAnalytics(
                stat_key=stat_key,
                date=date_str,
                category=category,
                channel=channel,
            )

        for name in COUNTERS:
            setattr(row, name, max(getattr(row, name) or 0, counts.get(name, 0)))
        row.recompute_rates()
        row.updated_at = datetime.now(UTC)

        repo.add(row)

    def count_statuses(self, category, channel, statuses, on=None) -> None:
        """Count the funnel statuses among ``statuses``; QUEUED, SENT and FAILED have their own counters."""
        for status in statuses:
            counter = _STATUS_COUNTERS.get(DeliveryStatus(status))
            if counter:
                self.increment(category, channel, counter, on=on)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def _rows(self, date_from=None, date_to=None, **filters) -> list[NotificationAnalytics]:
        repo = current_domain.repository_for(NotificationAnalytics)
        if date_from is not None:
            filters["date__gte"] = _date_str(date_from)
        if date_to is not None:
            filters["date__lte"] = _date_str(date_to)
        return fetch_all(repo, order_by="date", **filters)

    def get_analytics(self, date_from=None, date_to=None, category=None, channel=None) -> list[NotificationAnalytics]:
        filters = {}
        if category is not None:
            filters["category"] = parse_category(category).value
        if channel is not None and channel != ALL_CHANNELS:
            try:
                channel = DeliveryChannel(channel).value
            except ValueError:
                raise ValidationError({"channel": [f"Unknown delivery channel: {channel}"]}) from None
        if channel is not None:
            filters["channel"] = channel
        return self._rows(date_from, date_to, **filters)

    def get_summary(self, date_from=None, date_to=None) -> dict:
        """Totals and rates across every category and channel in the range."""
        rows = self._rows(date_from, date_to)
        channel_rows = [row for row in rows if row.channel != ALL_CHANNELS]
        category_rows = [row for row in rows if row.channel == ALL_CHANNELS]

        summary = summarize(channel_rows)
        summary["total_notifications"] = sum(row.total_notifications or 0 for row in category_rows)
        summary["total_read"] = sum(row.total_read or 0 for row in category_rows)
        summary["read_rate"] = summarize(category_rows)["read_rate"]
        summary["by_channel"] = {
            channel.value: summarize([row for row in channel_rows if row.channel == channel.value])
            for channel in DeliveryChannel
        }
        summary["date_from"] = _date_str(date_from)
        summary["date_to"] = _date_str(date_to)
        return summary

    def get_category_breakdown(self, date_from=None, date_to=None) -> dict:
        """Per-category totals and rates for the range."""
        rows = self._rows(date_from, date_to)
        breakdown = {}
        for category in NotificationCategory:
            mine = [row for row in rows if row.category == category.value]
            if not mine:
                continue
            totals = summarize([row for row in mine if row.channel != ALL_CHANNELS])
            per_category = summarize([row for row in mine if row.channel == ALL_CHANNELS])
            totals["total_notifications"] = per_category["total_notifications"]
            totals["total_read"] = per_category["total_read"]
            totals["read_rate"] = per_category["read_rate"]
            breakdown[category.value] = totals
        return breakdown

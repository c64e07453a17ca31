"""Tests for Notification state machine: valid transitions and invalid transition guards."""

from datetime import UTC, datetime, timedelta

import pytest
from notifications.errors import InvalidTransition
from notifications.notification.events import (
    NotificationCreated,
    NotificationDeferred,
    NotificationFailed,
    NotificationRead,
    NotificationSent,
)
from notifications.notification.notification import (
    Notification,
    NotificationCategory,
    NotificationStatus,
    parse_category,
)
from protean.exceptions import ValidationError


def _make_notification(**overrides):
    defaults = {
        "user_id": "user-001",
        "category": NotificationCategory.EVENT_REMINDER.value,
        "title": "Concert tonight",
        "body": "Doors open at 7pm.",
    }
    defaults.update(overrides)
    return Notification.create(**defaults)


def _notification_at_state(target_status):
    """Create a notification and advance it to the desired state."""
    n = _make_notification()
    n._events.clear()

    if target_status == NotificationStatus.PENDING:
        return n

    if target_status == NotificationStatus.SENT:
        n.mark_sent(["Email"])
        n._events.clear()
        return n

    if target_status == NotificationStatus.FAILED:
        n.mark_failed("user disabled notifications")
        n._events.clear()
        return n

    if target_status == NotificationStatus.READ:
        n.mark_sent(["InApp"])
        n.mark_read()
        n._events.clear()
        return n

    raise ValueError(f"Cannot create notification at state {target_status}")


# ---------------------------------------------------------------
# Creation
# ---------------------------------------------------------------
class TestNotificationCreation:
    def test_new_notification_is_pending_and_unread(self):
        n = _make_notification()
        assert n.status == NotificationStatus.PENDING.value
        assert n.is_read is False
        assert n.retry_count == 0
        assert n.channel_list == []

    def test_creation_raises_created_event(self):
        n = _make_notification()
        assert len(n._events) == 1
        assert isinstance(n._events[0], NotificationCreated)
        assert n._events[0].user_id == "user-001"

    def test_payload_is_stored_as_json(self):
        n = _make_notification(payload={"event_name": "Jazz Night"})
        assert n.payload_data == {"event_name": "Jazz Night"}

    def test_missing_payload_reads_as_empty_dict(self):
        assert _make_notification().payload_data == {}

    def test_naive_schedule_is_treated_as_utc(self):
        n = _make_notification(scheduled_for=datetime(2030, 1, 1, 9, 0))
        assert n.scheduled_for.tzinfo is not None
        assert n.release_at() == datetime(2030, 1, 1, 9, 0, tzinfo=UTC)

    def test_unknown_category_is_rejected(self):
        with pytest.raises(ValidationError):
            _make_notification(category="Gossip")

    def test_parse_category_accepts_values_and_members(self):
        assert parse_category("Review") == NotificationCategory.REVIEW
        assert parse_category(NotificationCategory.REVIEW) == NotificationCategory.REVIEW

    def test_parse_category_rejects_unknown_values(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_category("Gossip")
        assert "category" in exc_info.value.messages


# ---------------------------------------------------------------
# Happy path transitions
# ---------------------------------------------------------------
class TestValidTransitions:
    def test_pending_to_sent(self):
        n = _notification_at_state(NotificationStatus.PENDING)
        n.mark_sent(["InApp", "Email"])
        assert n.status == NotificationStatus.SENT.value
        assert n.channel_list == ["Email", "InApp"]
        assert n.sent_at is not None
        assert isinstance(n._events[-1], NotificationSent)

    def test_pending_to_failed(self):
        n = _notification_at_state(NotificationStatus.PENDING)
        n.mark_failed("user unsubscribed from Marketing")
        assert n.status == NotificationStatus.FAILED.value
        assert n.failure_reason == "user unsubscribed from Marketing"
        assert isinstance(n._events[-1], NotificationFailed)

    def test_sent_to_read(self):
        n = _notification_at_state(NotificationStatus.SENT)
        assert n.mark_read() is True
        assert n.status == NotificationStatus.READ.value
        assert n.is_read is True
        assert n.read_at is not None
        assert isinstance(n._events[-1], NotificationRead)


# ---------------------------------------------------------------
# Read flag
# ---------------------------------------------------------------
class TestReadFlag:
    def test_reading_a_failed_notification_keeps_its_status(self):
        n = _notification_at_state(NotificationStatus.FAILED)
        assert n.mark_read() is True
        assert n.is_read is True
        assert n.status == NotificationStatus.FAILED.value

    def test_reading_a_pending_notification_keeps_its_status(self):
        n = _notification_at_state(NotificationStatus.PENDING)
        n.mark_read()
        assert n.is_read is True
        assert n.status == NotificationStatus.PENDING.value

    def test_second_read_is_a_no_op(self):
        n = _notification_at_state(NotificationStatus.READ)
        first_read_at = n.read_at
        assert n.mark_read() is False
        assert n.read_at == first_read_at
        assert n._events == []


# ---------------------------------------------------------------
# Invalid transitions
# ---------------------------------------------------------------
class TestInvalidTransitions:
    @pytest.mark.parametrize(
        "state",
        [NotificationStatus.SENT, NotificationStatus.FAILED, NotificationStatus.READ],
    )
    def test_cannot_send_twice_or_after_terminal(self, state):
        n = _notification_at_state(state)
        with pytest.raises(InvalidTransition):
            n.mark_sent(["Email"])

    @pytest.mark.parametrize(
        "state",
        [NotificationStatus.SENT, NotificationStatus.FAILED, NotificationStatus.READ],
    )
    def test_cannot_fail_after_leaving_pending(self, state):
        n = _notification_at_state(state)
        with pytest.raises(InvalidTransition):
            n.mark_failed("too late")

    def test_invalid_transition_is_a_validation_error(self):
        n = _notification_at_state(NotificationStatus.FAILED)
        with pytest.raises(ValidationError) as exc_info:
            n.mark_sent(["Email"])
        assert "status" in exc_info.value.messages


# ---------------------------------------------------------------
# Deferral and scheduling
# ---------------------------------------------------------------
class TestDeferral:
    def test_defer_sets_release_time(self):
        n = _notification_at_state(NotificationStatus.PENDING)
        until = datetime.now(UTC) + timedelta(hours=8)
        n.defer(until)
        assert n.deferred_until == until
        assert n.release_at() == until
        assert isinstance(n._events[-1], NotificationDeferred)

    def test_defer_without_release_time_is_never_due(self):
        n = _notification_at_state(NotificationStatus.PENDING)
        n.defer(None)
        assert n.release_at() is None

    def test_cannot_defer_a_sent_notification(self):
        n = _notification_at_state(NotificationStatus.SENT)
        with pytest.raises(InvalidTransition):
            n.defer(datetime.now(UTC))

    def test_release_is_the_later_of_schedule_and_deferral(self):
        scheduled = datetime.now(UTC) + timedelta(hours=1)
        n = _make_notification(scheduled_for=scheduled)
        n.defer(scheduled + timedelta(hours=2))
        assert n.release_at() == scheduled + timedelta(hours=2)

    def test_is_due_once_release_time_has_passed(self):
        scheduled = datetime.now(UTC) + timedelta(minutes=30)
        n = _make_notification(scheduled_for=scheduled)
        assert n.is_due(datetime.now(UTC)) is False
        assert n.is_due(scheduled + timedelta(seconds=1)) is True

    def test_sent_notification_is_never_due(self):
        n = _notification_at_state(NotificationStatus.SENT)
        assert n.is_due(datetime.now(UTC) + timedelta(days=1)) is False

    def test_mark_sent_clears_deferral(self):
        n = _notification_at_state(NotificationStatus.PENDING)
        n.defer(datetime.now(UTC))
        n.mark_sent(["Email"])
        assert n.deferred_until is None

    def test_record_retry_counts_retries(self):
        n = _notification_at_state(NotificationStatus.SENT)
        n.record_retry()
        n.record_retry()
        assert n.retry_count == 2

"""Tests for quiet-hours deferral and the scheduler sweep that releases held notifications."""

from datetime import UTC, datetime, timedelta

import pytest
from notifications.bootstrap import build_orchestrator
from notifications.config import NotificationSettings
from notifications.notification.notification import Notification, NotificationStatus
from protean.utils.globals import current_domain

NIGHT = datetime(2099, 1, 1, 23, 0, tzinfo=UTC)
MORNING = datetime(2099, 1, 2, 8, 0, tzinfo=UTC)


def _quiet(orchestrator, user_id="user-1", start="22:00", end="08:00", timezone="UTC"):
    orchestrator.update_user_preferences(
        user_id, {"quiet_hours": {"enabled": True, "start": start, "end": end, "timezone": timezone}}
    )


def _window_around_now():
    now = datetime.now(UTC)
    return (now - timedelta(hours=1)).strftime("%H:%M"), (now + timedelta(hours=1)).strftime("%H:%M")


def _reload(notification):
    return current_domain.repository_for(Notification).get(notification.id)


class TestQuietHours:
    def test_notification_released_during_quiet_hours_is_deferred(self, orchestrator):
        _quiet(orchestrator)
        notification = orchestrator.create_and_send("user-1", "Follower", "New follower", "Lee", scheduled_for=NIGHT)

        result = orchestrator.process_scheduled(as_of=NIGHT)

        assert result["released"] == 0
        assert result["deferred"] == 1
        deferred = _reload(notification)
        assert deferred.status == NotificationStatus.PENDING.value
        assert deferred.deferred_until == MORNING
        assert orchestrator.get_delivery_attempts(notification.id) == []

    def test_deferred_notification_is_released_when_quiet_hours_end(self, orchestrator):
        _quiet(orchestrator)
        notification = orchestrator.create_and_send("user-1", "Follower", "New follower", "Lee", scheduled_for=NIGHT)
        orchestrator.process_scheduled(as_of=NIGHT)

        assert orchestrator.process_scheduled(as_of=MORNING - timedelta(minutes=1))["released"] == 0
        assert orchestrator.process_scheduled(as_of=MORNING)["released"] == 1

        released = _reload(notification)
        assert released.status == NotificationStatus.SENT.value
        assert released.deferred_until is None
        assert [a.channel for a in orchestrator.get_delivery_attempts(notification.id)] == ["InApp"]

    def test_window_is_evaluated_in_the_users_timezone(self, orchestrator):
        _quiet(orchestrator, start="22:00", end="07:00", timezone="America/New_York")
        late_evening_in_new_york = datetime(2099, 1, 2, 3, 30, tzinfo=UTC)
        notification = orchestrator.create_and_send(
            "user-1", "Follower", "New follower", "Lee", scheduled_for=late_evening_in_new_york
        )

        orchestrator.process_scheduled(as_of=late_evening_in_new_york)

        assert _reload(notification).deferred_until == datetime(2099, 1, 2, 12, 0, tzinfo=UTC)

    def test_immediate_notification_inside_the_window_creates_no_attempts(self, orchestrator):
        start, end = _window_around_now()
        _quiet(orchestrator, start=start, end=end)

        notification = orchestrator.create_and_send("user-1", "Follower", "New follower", "Lee")

        assert notification.status == NotificationStatus.PENDING.value
        assert notification.deferred_until is not None
        assert orchestrator.get_delivery_attempts(notification.id) == []

        later = datetime.now(UTC) + timedelta(hours=3)
        assert orchestrator.process_scheduled(as_of=later)["released"] == 1
        assert _reload(notification).status == NotificationStatus.SENT.value

    def test_disabled_window_is_ignored(self, orchestrator):
        start, end = _window_around_now()
        _quiet(orchestrator, start=start, end=end)
        orchestrator.update_user_preferences("user-1", {"quiet_hours": {"enabled": False}})

        notification = orchestrator.create_and_send("user-1", "Follower", "New follower", "Lee")

        assert notification.status == NotificationStatus.SENT.value


class TestQuietHoursWithoutRequeue:
    @pytest.fixture()
    def no_requeue(self, adapters, store, broker):
        settings = NotificationSettings(redis_url=None, instance_id="instance-a", requeue_after_quiet_hours=False)
        orchestrator = build_orchestrator(settings=settings, adapters=adapters, store=store, broker=broker)
        yield orchestrator
        orchestrator.dispatcher.shutdown()

    def test_deferred_notification_has_no_release_time(self, no_requeue):
        start, end = _window_around_now()
        _quiet(no_requeue, start=start, end=end)

        notification = no_requeue.create_and_send("user-1", "Follower", "New follower", "Lee")

        assert notification.status == NotificationStatus.PENDING.value
        assert notification.deferred_until is None

        result = no_requeue.process_scheduled(as_of=datetime.now(UTC) + timedelta(days=1))
        assert result["released"] == 0
        assert _reload(notification).status == NotificationStatus.PENDING.value

    def test_past_due_notification_in_quiet_hours_is_not_counted_as_released(self, no_requeue):
        start, end = _window_around_now()
        _quiet(no_requeue, start=start, end=end)
        notification = no_requeue.create_and_send(
            "user-1", "Follower", "New follower", "Lee", scheduled_for=datetime.now(UTC) - timedelta(minutes=5)
        )
        assert notification.status == NotificationStatus.PENDING.value

        first = no_requeue.process_scheduled(as_of=datetime.now(UTC))
        second = no_requeue.process_scheduled(as_of=datetime.now(UTC))

        assert first["released"] == second["released"] == 0
        assert first["deferred"] == second["deferred"] == 1
        assert _reload(notification).status == NotificationStatus.PENDING.value
        assert no_requeue.get_delivery_attempts(notification.id) == []


class TestScheduledNotifications:
    def test_released_once_due(self, orchestrator):
        scheduled_for = datetime.now(UTC) + timedelta(hours=1)
        notification = orchestrator.create_and_send(
            "user-1", "EventReminder", "Tomorrow", "Doors at 7", scheduled_for=scheduled_for
        )

        assert orchestrator.process_scheduled(as_of=datetime.now(UTC))["released"] == 0
        assert orchestrator.process_scheduled(as_of=scheduled_for + timedelta(minutes=1))["released"] == 1
        assert _reload(notification).status == NotificationStatus.SENT.value

    def test_naive_sweep_time_is_treated_as_utc(self, orchestrator):
        notification = orchestrator.create_and_send("user-1", "Follower", "Hi", "Hello", scheduled_for=NIGHT)

        orchestrator.process_scheduled(as_of=NIGHT.replace(tzinfo=None))

        assert _reload(notification).status == NotificationStatus.SENT.value

    def test_held_notifications_without_a_time_are_not_released(self, orchestrator):
        notification = orchestrator.create_and_send("user-1", "Follower", "Hi", "Hello", send_immediately=False)

        assert orchestrator.process_scheduled(as_of=NIGHT)["released"] == 0
        assert _reload(notification).status == NotificationStatus.PENDING.value

    def test_deleting_a_scheduled_notification_cancels_it(self, orchestrator):
        notification = orchestrator.create_and_send("user-1", "Follower", "Hi", "Hello", scheduled_for=NIGHT)

        orchestrator.delete_notification("user-1", notification.id)

        assert orchestrator.process_scheduled(as_of=NIGHT)["released"] == 0

    def test_one_failing_release_does_not_stop_the_sweep(self, orchestrator, monkeypatch):
        first = orchestrator.create_and_send("user-1", "Follower", "first", "Hello", scheduled_for=NIGHT)
        second = orchestrator.create_and_send("user-2", "Follower", "second", "Hello", scheduled_for=NIGHT)
        release = orchestrator.scheduler.release

        def flaky_release(notification, as_of):
            if notification.id == first.id:
                raise RuntimeError("boom")
            return release(notification, as_of)

        monkeypatch.setattr(orchestrator.scheduler, "release", flaky_release)

        result = orchestrator.process_scheduled(as_of=NIGHT)

        assert result["released"] == 1
        assert _reload(second).status == NotificationStatus.SENT.value
        assert _reload(first).status == NotificationStatus.PENDING.value

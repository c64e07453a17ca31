"""BDD tests for notification delivery."""

from notifications.analytics.analytics import ALL_CHANNELS
from notifications.errors import RateLimitExceeded
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/notification_delivery.feature")


@given(parsers.cfparse("the user has received {count:d} notifications this hour"))
def fill_rate_limit(orchestrator, user_id, count):
    for i in range(count):
        orchestrator.create_and_send(user_id, "Follower", f"Update {i}", "body", send_immediately=False)


@when("the user reads the notification", target_fixture="notification")
def read_notification(orchestrator, user_id, notification):
    return orchestrator.mark_as_read(user_id, notification.id)


@when(parsers.cfparse('the provider reports the "{channel}" attempt as "{status}"'))
def provider_callback(orchestrator, notification, channel, status):
    attempt = next(a for a in orchestrator.get_delivery_attempts(notification.id) if a.channel == channel)
    orchestrator.update_delivery_status(attempt.id, status)


@when(parsers.cfparse('the email provider recovers and the "{channel}" attempt is retried'))
def retry_after_recovery(orchestrator, adapters, notification, channel):
    adapters.email.configure(should_succeed=True)
    attempt = next(a for a in orchestrator.get_delivery_attempts(notification.id) if a.channel == channel)
    orchestrator.retry_delivery(attempt.id)


@when("another notification is requested for the user")
def one_more(orchestrator, user_id, error):
    try:
        orchestrator.create_and_send(user_id, "Follower", "One more", "body")
    except RateLimitExceeded as exc:
        error["exc"] = exc


@when(parsers.cfparse('a notification in category "{category}" is requested for the user'))
def request_category(orchestrator, user_id, category, error):
    try:
        orchestrator.create_and_send(user_id, category, "Hello", "body")
    except ValidationError as exc:
        error["exc"] = exc


@then(parsers.cfparse('the "{category}" open count is {count:d}'))
def open_count(orchestrator, category, count):
    rows = orchestrator.get_analytics(category=category)
    assert sum(row.total_opened or 0 for row in rows if row.channel != ALL_CHANNELS) == count


@then("the user's inbox is empty")
def inbox_empty(orchestrator, user_id):
    assert orchestrator.get_notifications(user_id)["total"] == 0

"""Shared BDD fixtures and step definitions for the Notifications domain."""

import pytest
from notifications.preference.resolver import resolve_channels
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def error():
    """Container for captured errors."""
    return {"exc": None}


def _channel_names(text):
    if text.strip().lower() == "no channels":
        return set()
    return {name.strip() for name in text.split(",")}


# ---------------------------------------------------------------------------
# Given steps: users
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a user "{user_id}" with default preferences'), target_fixture="user_id")
def plain_user(orchestrator, user_id):
    orchestrator.get_user_preferences(user_id)
    return user_id


@given(
    parsers.cfparse('a user "{user_id}" with a verified email "{email}"'),
    target_fixture="user_id",
)
def user_with_verified_email(contactable_user, user_id, email):
    return contactable_user(user_id=user_id, email=email, device_token=None)


@given(parsers.cfparse('the user is unsubscribed from "{category}"'))
def user_unsubscribed(orchestrator, user_id, category):
    orchestrator.unsubscribe_from_category(user_id, category)


@given("the email provider rejects messages")
def email_rejects(adapters):
    adapters.email.configure(should_succeed=False, failure_reason="Mailbox unavailable")


# ---------------------------------------------------------------------------
# When steps: notifications
# ---------------------------------------------------------------------------
@when(
    parsers.cfparse('a "{category}" notification titled "{title}" is sent to the user'),
    target_fixture="notification",
)
def send_notification(orchestrator, user_id, category, title):
    return orchestrator.create_and_send(user_id, category, title, f"{title} details")


# ---------------------------------------------------------------------------
# Then steps: notifications
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the notification status is "{status}"'))
def notification_status_is(notification, status):
    assert notification.status == status


@then(parsers.cfparse("{count:d} delivery attempts exist"))
def delivery_attempt_count(orchestrator, notification, count):
    assert len(orchestrator.get_delivery_attempts(notification.id)) == count


@then(parsers.cfparse('the "{channel}" attempt is "{status}"'))
def attempt_status_is(orchestrator, notification, channel, status):
    attempts = {a.channel: a for a in orchestrator.get_delivery_attempts(notification.id)}
    assert attempts[channel].status == status


@then(parsers.cfparse('the request is rejected with "{error_type}"'))
def request_rejected(error, error_type):
    assert error["exc"] is not None, "Expected an error but none was raised"
    assert type(error["exc"]).__name__ == error_type


# ---------------------------------------------------------------------------
# Then steps: preferences
# ---------------------------------------------------------------------------
@then(parsers.cfparse('a "{category}" notification goes out on "{channels}"'))
def category_resolves_to(orchestrator, user_id, category, channels):
    preferences = orchestrator.get_user_preferences(user_id)
    resolution = resolve_channels(preferences, category)
    assert {c.value for c in resolution.channels} == _channel_names(channels)

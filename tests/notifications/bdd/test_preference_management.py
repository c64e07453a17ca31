"""BDD tests for preference management."""

from protean.exceptions import ValidationError
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/preference_management.feature")


@when(parsers.cfparse('the user turns "{channel}" {state} for "{category}"'))
def toggle_channel(orchestrator, user_id, channel, state, category):
    orchestrator.update_user_preferences(user_id, {"categories": {category: {channel: state == "on"}}})


@when("the user unsubscribes from all notifications")
def unsubscribe_all(orchestrator, user_id):
    orchestrator.unsubscribe_from_all(user_id)


@when(parsers.cfparse('the user sets quiet hours from "{start}" to "{end}" in "{timezone}"'))
def set_quiet_hours(orchestrator, user_id, start, end, timezone):
    orchestrator.update_user_preferences(
        user_id, {"quiet_hours": {"enabled": True, "start": start, "end": end, "timezone": timezone}}
    )


@when(parsers.cfparse('the user sets the preference "{key}" to "{value}"'))
def set_preference(orchestrator, user_id, key, value, error):
    try:
        orchestrator.update_user_preferences(user_id, {key: value})
    except ValidationError as exc:
        error["exc"] = exc


@when(parsers.cfparse('the user registers device "{token}"'))
def register_device(orchestrator, user_id, token):
    orchestrator.add_device_token(user_id, token)


@then(parsers.cfparse('quiet hours are "{start}" - "{end}" in "{timezone}"'))
def quiet_hours_are(orchestrator, user_id, start, end, timezone):
    quiet = orchestrator.get_user_preferences(user_id).quiet_hours
    assert quiet.enabled is True
    assert (quiet.start, quiet.end, quiet.timezone) == (start, end, timezone)


@then(parsers.cfparse("the user has {count:d} registered device"))
def registered_devices(orchestrator, user_id, count):
    assert len(orchestrator.get_user_preferences(user_id).device_token_list) == count

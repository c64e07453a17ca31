"""Preference service: lazy creation, cache-aside reads, command-driven writes.

Reads go through the shared store (``notifications:preferences:<user>``).
Writes are dispatched as commands to ``ManagePreferencesHandler``; the
resulting events drop the cached copy (see ``preference.cache``).
"""

import json
from datetime import datetime

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from notifications.preference.cache import cache_key
from notifications.preference.management import (
    EMAIL,
    PHONE,
    RegisterDeviceToken,
    RemoveDeviceTokens,
    SubscribeToCategory,
    UnsubscribeFromAll,
    UnsubscribeFromCategory,
    UpdatePreferences,
    VerifyContact,
    find_preferences,
    load_or_create_preferences,
)
from notifications.preference.patch import PreferencesPatch, parse_patch
from notifications.preference.preference import (
    CATEGORY_FIELDS,
    ChannelToggles,
    NotificationPreference,
    QuietHours,
)
from notifications.store.kv_port import KeyValueStore

_TOGGLE_FIELDS = ("default_channels", *CATEGORY_FIELDS.values())
_PLAIN_FIELDS = (
    "user_id",
    "notifications_enabled",
    "unsubscribed_from_all",
    "unsubscribed_categories",
    "primary_email",
    "email_verified",
    "phone_number",
    "phone_verified",
    "device_tokens",
    "language",
    "timezone",
)
_DATETIME_FIELDS = ("created_at", "updated_at")


def _to_cache(preference: NotificationPreference) -> str:
    data = {"id": str(preference.id)}
    data.update({name: getattr(preference, name) for name in _PLAIN_FIELDS})
    data["user_id"] = str(preference.user_id)
    for name in _TOGGLE_FIELDS:
        toggles = getattr(preference, name)
        data[name] = (
            {key: getattr(toggles, key) for key in ("email", "push", "in_app", "sms")} if toggles else None
        )
    quiet = preference.quiet_hours
    data["quiet_hours"] = (
        {"enabled": quiet.enabled, "start": quiet.start, "end": quiet.end, "timezone": quiet.timezone}
        if quiet
        else None
    )
    for name in _DATETIME_FIELDS:
        value = getattr(preference, name)
        data[name] = value.isoformat() if value else None
    return json.dumps(data)


def _from_cache(raw: str) -> NotificationPreference:
    data = json.loads(raw)
    for name in _TOGGLE_FIELDS:
        data[name] = ChannelToggles(**data[name]) if data.get(name) else None
    data["quiet_hours"] = QuietHours(**data["quiet_hours"]) if data.get("quiet_hours") else None
    for name in _DATETIME_FIELDS:
        data[name] = datetime.fromisoformat(data[name]) if data.get(name) else None
    return NotificationPreference(**data)


class PreferenceService:
    def __init__(self, store: KeyValueStore, cache_ttl_seconds: int = 3600):
        self.store = store
        self.cache_ttl_seconds = cache_ttl_seconds

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_for_update(self, user_id) -> NotificationPreference:
        """Fetch from the repository, creating defaults on first access."""
        return load_or_create_preferences(user_id)

    def get(self, user_id) -> NotificationPreference:
        """Cache-aside read used by the resolver and the read API."""
        cached = self.store.get(cache_key(user_id))
        if cached:
            return _from_cache(cached)

        preference = self.load_for_update(user_id)
        self.store.set(cache_key(user_id), _to_cache(preference), self.cache_ttl_seconds)
        return preference

    def _process(self, command) -> NotificationPreference:
        current_domain.process(command, asynchronous=False)
        return find_preferences(command.user_id)

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def update(self, user_id, patch: dict | PreferencesPatch) -> NotificationPreference:
        return self._process(UpdatePreferences(user_id=str(user_id), changes=parse_patch(patch)))

    def add_device_token(self, user_id, token) -> NotificationPreference:
        if not token or not token.strip():
            raise ValidationError({"device_token": ["Device token must not be empty"]})
        return self._process(RegisterDeviceToken(user_id=str(user_id), token=token))

    def remove_device_token(self, user_id, token, reason="user_request") -> NotificationPreference:
        return self.remove_device_tokens(user_id, [token], reason=reason)

    def remove_device_tokens(self, user_id, tokens, reason) -> NotificationPreference:
        return self._process(RemoveDeviceTokens(user_id=str(user_id), tokens=list(tokens), reason=reason))

    def unsubscribe_from_category(self, user_id, category) -> NotificationPreference:
        return self._process(UnsubscribeFromCategory(user_id=str(user_id), category=category.value))

    def subscribe_to_category(self, user_id, category) -> NotificationPreference:
        return self._process(SubscribeToCategory(user_id=str(user_id), category=category.value))

    def unsubscribe_from_all(self, user_id) -> NotificationPreference:
        return self._process(UnsubscribeFromAll(user_id=str(user_id)))

    def verify_email(self, user_id) -> NotificationPreference:
        return self._process(VerifyContact(user_id=str(user_id), contact_type=EMAIL))

    def verify_phone(self, user_id) -> NotificationPreference:
        return self._process(VerifyContact(user_id=str(user_id), contact_type=PHONE))

"""Preference cache invalidation: drops the cached copy whenever preferences change.

Every NotificationPreference event invalidates ``notifications:preferences:<user>``
in the shared store, so an opt-out is never served stale from cache.
"""

from protean.utils.mixins import handle

from notifications.domain import notifications
from notifications.preference.events import (
    CategoryResubscribed,
    CategoryUnsubscribed,
    ContactVerified,
    DeviceTokenRegistered,
    DeviceTokenRemoved,
    PreferencesCreated,
    PreferencesUpdated,
    UnsubscribedFromAll,
)
from notifications.preference.preference import NotificationPreference
from notifications.store import get_shared_store

CACHE_PREFIX = "notifications:preferences:"


def cache_key(user_id) -> str:
    return f"{CACHE_PREFIX}{user_id}"


def _invalidate(event) -> None:
    get_shared_store().delete(cache_key(event.user_id))


@notifications.event_handler(part_of=NotificationPreference)
class PreferenceCacheHandler:
    @handle(PreferencesCreated)
    def on_preferences_created(self, event):
        _invalidate(event)

    @handle(PreferencesUpdated)
    def on_preferences_updated(self, event):
        _invalidate(event)

    @handle(CategoryUnsubscribed)
    def on_category_unsubscribed(self, event):
        _invalidate(event)

    @handle(CategoryResubscribed)
    def on_category_resubscribed(self, event):
        _invalidate(event)

    @handle(UnsubscribedFromAll)
    def on_unsubscribed_from_all(self, event):
        _invalidate(event)

    @handle(DeviceTokenRegistered)
    def on_device_token_registered(self, event):
        _invalidate(event)

    @handle(DeviceTokenRemoved)
    def on_device_token_removed(self, event):
        _invalidate(event)

    @handle(ContactVerified)
    def on_contact_verified(self, event):
        _invalidate(event)

"""Preference management commands and handler. Every preference write goes through here."""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Dict, Identifier, List, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from notifications.domain import notifications
from notifications.preference.preference import NotificationPreference

logger = structlog.get_logger(__name__)

EMAIL = "email"
PHONE = "phone"


@notifications.command(part_of="NotificationPreference")
class UpdatePreferences:
    """Merge a validated patch (see ``preference.patch``) into a user's preferences."""

    user_id: Identifier(required=True)
    changes: Dict(required=True)


@notifications.command(part_of="NotificationPreference")
class RegisterDeviceToken:
    user_id: Identifier(required=True)
    token: String(required=True, max_length=4096)


@notifications.command(part_of="NotificationPreference")
class RemoveDeviceTokens:
    """Drop one or more push tokens; ``reason`` tells user requests from provider pruning."""

    user_id: Identifier(required=True)
    tokens: List(content_type=String, required=True)
    reason: String(max_length=100, default="user_request")


@notifications.command(part_of="NotificationPreference")
class UnsubscribeFromCategory:
    user_id: Identifier(required=True)
    category: String(required=True)


@notifications.command(part_of="NotificationPreference")
class SubscribeToCategory:
    user_id: Identifier(required=True)
    category: String(required=True)


@notifications.command(part_of="NotificationPreference")
class UnsubscribeFromAll:
    user_id: Identifier(required=True)


@notifications.command(part_of="NotificationPreference")
class VerifyContact:
    """Mark the user's email address or phone number as verified."""

    user_id: Identifier(required=True)
    contact_type: String(required=True, choices=[EMAIL, PHONE])


def find_preferences(user_id) -> NotificationPreference | None:
    repo = current_domain.repository_for(NotificationPreference)
    found = repo._dao.query.filter(user_id=str(user_id)).all().items
    return found[0] if found else None


def load_or_create_preferences(user_id) -> NotificationPreference:
    """Fetch a user's preferences, creating the defaults on first access."""
    preference = find_preferences(user_id)
    if preference is not None:
        return preference

    preference = NotificationPreference.create_default(user_id=str(user_id))
    try:
        current_domain.repository_for(NotificationPreference).add(preference)
    except ValidationError:
        # A concurrent request created them first
        existing = find_preferences(user_id)
        if existing is None:
            raise
        return existing

    logger.info("Default preferences created", user_id=str(user_id))
    return preference


@notifications.command_handler(part_of=NotificationPreference)
class ManagePreferencesHandler:
    @handle(UpdatePreferences)
    def update_preferences(self, command: UpdatePreferences):
        preference = load_or_create_preferences(command.user_id)
        changed = preference.apply_changes(command.changes)
        if changed:
            current_domain.repository_for(NotificationPreference).add(preference)
            logger.info("Preferences updated", user_id=str(command.user_id), fields=changed)

    @handle(RegisterDeviceToken)
    def register_device_token(self, command: RegisterDeviceToken):
        preference = load_or_create_preferences(command.user_id)
        if preference.add_device_token(command.token):
            current_domain.repository_for(NotificationPreference).add(preference)

    @handle(RemoveDeviceTokens)
    def remove_device_tokens(self, command: RemoveDeviceTokens):
        preference = load_or_create_preferences(command.user_id)
        removed = [token for token in command.tokens if preference.remove_device_token(token, reason=command.reason)]
        if removed:
            current_domain.repository_for(NotificationPreference).add(preference)
            logger.info(
                "Device tokens removed",
                user_id=str(command.user_id),
                count=len(removed),
                reason=command.reason,
            )

    @handle(UnsubscribeFromCategory)
    def unsubscribe_from_category(self, command: UnsubscribeFromCategory):
        preference = load_or_create_preferences(command.user_id)
        if preference.unsubscribe_from(command.category):
            current_domain.repository_for(NotificationPreference).add(preference)

    @handle(SubscribeToCategory)
    def subscribe_to_category(self, command: SubscribeToCategory):
        preference = load_or_create_preferences(command.user_id)
        if preference.resubscribe_to(command.category):
            current_domain.repository_for(NotificationPreference).add(preference)

    @handle(UnsubscribeFromAll)
    def unsubscribe_from_all(self, command: UnsubscribeFromAll):
        preference = load_or_create_preferences(command.user_id)
        if preference.unsubscribe_from_all():
            current_domain.repository_for(NotificationPreference).add(preference)
            logger.info("User unsubscribed from all notifications", user_id=str(command.user_id))

    @handle(VerifyContact)
    def verify_contact(self, command: VerifyContact):
        preference = load_or_create_preferences(command.user_id)
        if command.contact_type == EMAIL:
            preference.verify_email()
        else:
            preference.verify_phone()
        current_domain.repository_for(NotificationPreference).add(preference)

"""Error taxonomy for the notifications service.

Validation and not-found conditions reuse Protean's exceptions so the
HTTP layer maps them with ``register_exception_handlers``. The remaining
errors are specific to delivery orchestration:

- ``RateLimitExceeded`` is raised to callers when admission is denied.
- ``InvalidTransition`` is a ``ValidationError`` raised by the delivery and
  notification state machines.
- ``ChannelUnavailable`` and ``ProviderError`` never escape the dispatcher;
  they are recorded on the failed DeliveryAttempt.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError

__all__ = [
    "ChannelUnavailable",
    "InvalidTransition",
    "NotFound",
    "NotificationError",
    "ProviderError",
    "RateLimitExceeded",
    "ValidationError",
]

NotFound = ObjectNotFoundError


class NotificationError(Exception):
    """Base class for orchestration errors that are not validation failures."""


class RateLimitExceeded(NotificationError):
    def __init__(self, user_id: str, limit: int, window_seconds: int):
        self.user_id = user_id
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(f"Rate limit of {limit} notifications per {window_seconds}s exceeded for user {user_id}")


class InvalidTransition(ValidationError):
    """A status change that the state machine does not allow."""


class ChannelUnavailable(NotificationError):
    """The user has no usable address for the channel (unverified email, no device tokens)."""

    error_code = "channel_unavailable"


class ProviderError(NotificationError):
    """The provider rejected the message or could not be reached."""

    error_code = "provider_error"

    def __init__(self, message: str, error_code: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable
        if error_code:
            self.error_code = error_code

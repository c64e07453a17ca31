"""Fake SMS adapter: records sent messages for testing."""

from uuid import uuid4

from notifications.channel.sms_port import SMSPort
from notifications.errors import ProviderError


class FakeSMSAdapter(SMSPort):
    """SMS adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_messages: list[dict] = []
        self.reset()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "SMS delivery failed",
        provider_error_code: str | None = None,
        retryable: bool = True,
    ):
        """Configure the fake adapter behavior for testing.

        With ``provider_error_code`` set, ``send`` raises ``ProviderError``
        the way a gateway client does for an API-level rejection.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.provider_error_code = provider_error_code
        self.retryable = retryable

    def send(self, to: str, body: str) -> dict:
        if self.provider_error_code:
            raise ProviderError(self.failure_reason, error_code=self.provider_error_code, retryable=self.retryable)
        if not self.should_succeed:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason,
                "error_code": "rejected",
            }

        message_id = f"sms-{uuid4().hex[:12]}"
        self.sent_messages.append({"message_id": message_id, "to": to, "body": body})

        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        """Clear sent messages (useful between tests)."""
        self.sent_messages.clear()
        self.configure()

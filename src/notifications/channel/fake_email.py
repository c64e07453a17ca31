"""Fake email adapter: records sent emails for testing."""

from uuid import uuid4

from notifications.channel.email_port import EmailPort


class FakeEmailAdapter(EmailPort):
    """Email adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.reset()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Email delivery failed",
        raise_error: bool = False,
        healthy: bool = True,
    ):
        """Configure the fake adapter behavior for testing.

        ``raise_error`` simulates a transport failure (the relay is
        unreachable) instead of a rejected message.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_error = raise_error
        self.healthy = healthy

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
        reply_to: str | None = None,
    ) -> dict:
        if self.raise_error:
            raise ConnectionError(self.failure_reason)
        if not self.should_succeed:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason,
                "error_code": "rejected",
            }

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
                "html_body": html_body,
                "reply_to": reply_to,
            }
        )

        return {"message_id": message_id, "status": "sent"}

    def health_check(self) -> bool:
        return self.healthy

    def reset(self):
        """Clear sent emails (useful between tests)."""
        self.sent_emails.clear()
        self.configure()

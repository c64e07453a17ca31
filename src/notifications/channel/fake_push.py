"""Fake push notification adapter: records sent pushes for testing."""

from uuid import uuid4

from notifications.channel.push_port import PushPort


class FakePushAdapter(PushPort):
    """Push adapter that records notifications in memory for test assertions."""

    def __init__(self):
        self.sent_pushes: list[dict] = []
        self.invalid_tokens: set[str] = set()
        self.reset()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Push delivery failed",
        raise_error: bool = False,
    ):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_error = raise_error

    def mark_invalid(self, *tokens: str):
        """Make the gateway report ``tokens`` as unregistered."""
        self.invalid_tokens.update(tokens)

    def send(
        self,
        device_tokens: list[str],
        title: str,
        body: str,
        data: dict | None = None,
    ) -> dict:
        if self.raise_error:
            raise TimeoutError(self.failure_reason)

        stale = [token for token in device_tokens if token in self.invalid_tokens]
        live = [token for token in device_tokens if token not in self.invalid_tokens]

        if not self.should_succeed or not live:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason if not self.should_succeed else "No registered devices",
                "error_code": "rejected" if not self.should_succeed else "unregistered",
                "invalid_tokens": stale,
            }

        message_id = f"push-{uuid4().hex[:12]}"
        self.sent_pushes.append(
            {
                "message_id": message_id,
                "device_tokens": live,
                "title": title,
                "body": body,
                "data": data,
            }
        )

        return {"message_id": message_id, "status": "sent", "invalid_tokens": stale}

    def reset(self):
        """Clear sent pushes (useful between tests)."""
        self.sent_pushes.clear()
        self.invalid_tokens.clear()
        self.configure()

"""Email channel port: abstract interface for the email relay."""

from abc import ABC, abstractmethod


class EmailPort(ABC):
    """Abstract interface for email dispatch adapters."""

    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
        reply_to: str | None = None,
    ) -> dict:
        """Send an email message.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"),
            error and error_code (optional)
        """
        ...

    def health_check(self) -> bool:
        """Whether the relay is reachable. Adapters without a health endpoint report healthy."""
        return True

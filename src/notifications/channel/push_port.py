"""Push notification channel port: abstract interface for the push gateway."""

from abc import ABC, abstractmethod


class PushPort(ABC):
    """Abstract interface for push notification dispatch adapters."""

    @abstractmethod
    def send(
        self,
        device_tokens: list[str],
        title: str,
        body: str,
        data: dict | None = None,
    ) -> dict:
        """Send a push notification to every device of one user.

        Returns:
            dict with keys: message_id, status ("sent" if at least one device
            accepted it, else "failed"), error (optional), and
            invalid_tokens: tokens the gateway reported as unregistered
        """
        ...

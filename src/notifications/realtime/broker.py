"""Fan-out broker port and the in-process implementation.

A broker carries JSON-encoded messages on named topics between server
replicas. Every subscriber receives every message; topic filtering is the
subscriber's job.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[str, str], None]


class FanoutBroker(ABC):
    @abstractmethod
    def publish(self, topic: str, message: str) -> None: ...

    @abstractmethod
    def subscribe(self, handler: MessageHandler) -> None:
        """Register ``handler(topic, message)`` for every notifications topic."""
        ...

    @abstractmethod
    def ping(self) -> bool: ...

    def close(self) -> None:  # noqa: B027
        """Stop listening. No-op by default."""


class InlineFanoutBroker(FanoutBroker):
    """Delivers messages synchronously to every subscriber in this process.

    Several orchestrators sharing one instance behave like replicas sharing
    a Redis server.
    """

    def __init__(self):
        self._handlers: list[MessageHandler] = []

    def publish(self, topic: str, message: str) -> None:
        for handler in list(self._handlers):
            try:
                handler(topic, message)
            except Exception as exc:
                logger.error("Fan-out subscriber failed", topic=topic, error=str(exc))

    def subscribe(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self._handlers.clear()

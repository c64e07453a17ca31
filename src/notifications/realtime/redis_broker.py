"""Redis pub/sub fan-out broker.

Each replica pattern-subscribes to ``notifications:*`` on a background
listener thread and hands every message to its registered handlers.
"""

import structlog
from redis import Redis
from redis.exceptions import RedisError

from notifications.realtime.broker import FanoutBroker, MessageHandler

logger = structlog.get_logger(__name__)

TOPIC_PATTERN = "notifications:*"


class RedisFanoutBroker(FanoutBroker):
    def __init__(self, client: Redis, pattern: str = TOPIC_PATTERN):
        self._client = client
        self._pattern = pattern
        self._handlers: list[MessageHandler] = []
        self._pubsub = None
        self._thread = None

    @classmethod
    def from_url(cls, url: str) -> "RedisFanoutBroker":
        return cls(Redis.from_url(url, decode_responses=True))

    def publish(self, topic: str, message: str) -> None:
        self._client.publish(topic, message)

    def subscribe(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)
        if self._pubsub is None:
            self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            self._pubsub.psubscribe(**{self._pattern: self._on_message})
            self._thread = self._pubsub.run_in_thread(sleep_time=0.01, daemon=True)
            logger.info("Subscribed to fan-out topics", pattern=self._pattern)

    def _on_message(self, message: dict) -> None:
        topic, data = message["channel"], message["data"]
        for handler in list(self._handlers):
            try:
                handler(topic, data)
            except Exception as exc:
                logger.error("Fan-out subscriber failed", topic=topic, error=str(exc))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed", error=str(exc))
            return False

    def close(self) -> None:
        if self._thread is not None:
            self._thread.stop()
            self._thread = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None
        self._handlers.clear()

"""Cross-instance fan-out of real-time notification events.

Topics:
    notifications:created        a notification was admitted (any replica)
    notifications:user:<id>      events for one user's connected sessions
    notifications:broadcast      events for every connected session

Messages are JSON objects ``{message_id, type, user_id, payload,
timestamp, origin}``. Every replica subscribes to all topics; a replica
only pushes user-topic messages to users it holds sessions for.
"""

import json
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

import structlog

from notifications.realtime.broker import FanoutBroker
from notifications.realtime.sessions import SessionRegistry

logger = structlog.get_logger(__name__)

TOPIC_CREATED = "notifications:created"
TOPIC_BROADCAST = "notifications:broadcast"
USER_TOPIC_PREFIX = "notifications:user:"

# Event types
NOTIFICATION = "notification"
NOTIFICATION_CREATED = "notification_created"
NOTIFICATION_READ = "notification_read"
DELIVERY_STATUS = "delivery_status"
UNREAD_COUNT = "unread_count"

_INVALIDATING_TYPES = {NOTIFICATION_CREATED, NOTIFICATION_READ, UNREAD_COUNT}


def user_topic(user_id: str) -> str:
    return f"{USER_TOPIC_PREFIX}{user_id}"


class FanoutService:
    """Publishes events to the broker and routes received ones to local sessions."""

    def __init__(
        self,
        broker: FanoutBroker,
        sessions: SessionRegistry,
        instance_id: str,
        on_invalidate: Callable[[str], None] | None = None,
    ):
        self.broker = broker
        self.sessions = sessions
        self.instance_id = instance_id
        self.on_invalidate = on_invalidate
        self._started = False

    def start(self) -> None:
        if not self._started:
            self.broker.subscribe(self.handle_message)
            self._started = True

    def _message(self, event_type: str, user_id: str | None, payload: dict) -> dict:
        return {
            "message_id": uuid4().hex,
            "type": event_type,
            "user_id": str(user_id) if user_id is not None else None,
            "payload": payload,
            "timestamp": datetime.now(UTC).isoformat(),
            "origin": self.instance_id,
        }

    def _publish(self, topic: str, message: dict) -> dict:
        try:
            self.broker.publish(topic, json.dumps(message, default=str))
        except Exception as exc:
            logger.error("Fan-out publish failed", topic=topic, type=message["type"], error=str(exc))
        return message

    # -------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------
    def publish_to_user(self, user_id: str, event_type: str, payload: dict) -> dict:
        return self._publish(user_topic(user_id), self._message(event_type, user_id, payload))

    def publish_created(self, user_id: str, payload: dict) -> dict:
        return self._publish(TOPIC_CREATED, self._message(NOTIFICATION_CREATED, user_id, payload))

    def broadcast(self, event_type: str, payload: dict) -> dict:
        return self._publish(TOPIC_BROADCAST, self._message(event_type, None, payload))

    # -------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------
    def handle_message(self, topic: str, raw: str) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed fan-out message", topic=topic)
            return

        user_id = message.get("user_id")
        if user_id and self.on_invalidate and message.get("type") in _INVALIDATING_TYPES:
            self.on_invalidate(user_id)

        if topic.startswith(USER_TOPIC_PREFIX):
            target = topic[len(USER_TOPIC_PREFIX) :]
            if self.sessions.holds(target):
                self.sessions.deliver(target, message)
        elif topic == TOPIC_BROADCAST:
            self.sessions.broadcast(message)

"""Composition root: builds a NotificationOrchestrator from settings.

With ``NOTIFICATIONS_REDIS_URL`` set, counters, caches and fan-out go
through Redis so several replicas share them. Without it everything runs
in-process.
"""

import structlog

from notifications.channel import ChannelAdapters
from notifications.config import NotificationSettings, get_settings
from notifications.orchestrator import NotificationOrchestrator
from notifications.realtime.broker import FanoutBroker, InlineFanoutBroker
from notifications.realtime.sessions import SessionRegistry
from notifications.store import KeyValueStore, build_store

logger = structlog.get_logger(__name__)


def build_broker(redis_url: str | None = None) -> FanoutBroker:
    if redis_url:
        from notifications.realtime.redis_broker import RedisFanoutBroker

        return RedisFanoutBroker.from_url(redis_url)
    return InlineFanoutBroker()


def build_orchestrator(
    settings: NotificationSettings | None = None,
    adapters: ChannelAdapters | None = None,
    store: KeyValueStore | None = None,
    broker: FanoutBroker | None = None,
    sessions: SessionRegistry | None = None,
    executor=None,
    start: bool = True,
) -> NotificationOrchestrator:
    settings = settings or get_settings()
    orchestrator = NotificationOrchestrator(
        settings=settings,
        store=store or build_store(settings.redis_url),
        broker=broker or build_broker(settings.redis_url),
        adapters=adapters or ChannelAdapters(),
        sessions=sessions,
        executor=executor,
    )
    if start:
        orchestrator.start()

    logger.info(
        "Notification orchestrator ready",
        instance_id=settings.instance_id,
        shared_state="redis" if settings.redis_url else "memory",
    )
    return orchestrator

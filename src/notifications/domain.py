"""Notifications bounded context: multi-channel notification delivery orchestration.

Turns a single notification intent into tracked, channel-specific delivery
attempts (email, push, in-app, SMS). Honors per-user category preferences,
quiet hours and rate limits, retries failed deliveries, aggregates daily
delivery analytics and fans real-time events out across server replicas.
"""

import structlog
from protean.domain import Domain

notifications = Domain(name="notifications")

logger = structlog.get_logger(__name__)

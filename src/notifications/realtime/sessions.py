"""Local registry of real-time sessions held by this server replica."""

import asyncio
import threading
from collections import deque
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)


class Session:
    """A connected client that can receive real-time messages.

    ``deliver`` may be called from any thread.
    """

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id or uuid4().hex

    def deliver(self, message: dict) -> None:
        raise NotImplementedError


class MemorySession(Session):
    """Session that keeps delivered messages in a list."""

    def __init__(self, session_id: str | None = None):
        super().__init__(session_id)
        self.messages: list[dict] = []

    def deliver(self, message: dict) -> None:
        self.messages.append(message)


class WebSocketSession(Session):
    """Bridges deliveries onto an asyncio queue drained by a WebSocket writer."""

    def __init__(self, loop: asyncio.AbstractEventLoop, session_id: str | None = None):
        super().__init__(session_id)
        self._loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, message: dict) -> None:
        self._loop.call_soon_threadsafe(self.queue.put_nowait, message)


class SessionRegistry:
    """Maps user ids to the sessions connected to this replica.

    Each session receives a given ``message_id`` at most once.
    """

    def __init__(self, remembered_messages: int = 1024):
        self._lock = threading.Lock()
        self._sessions: dict[str, list[Session]] = {}
        self._seen: dict[str, tuple[deque, set]] = {}
        self._remembered = remembered_messages

    def connect(self, user_id: str, session: Session) -> None:
        with self._lock:
            self._sessions.setdefault(str(user_id), []).append(session)
            self._seen[session.session_id] = (deque(), set())
        logger.info("Session connected", user_id=str(user_id), session_id=session.session_id)

    def disconnect(self, user_id: str, session: Session) -> None:
        with self._lock:
            sessions = self._sessions.get(str(user_id), [])
            if session in sessions:
                sessions.remove(session)
            if not sessions:
                self._sessions.pop(str(user_id), None)
            self._seen.pop(session.session_id, None)
        logger.info("Session disconnected", user_id=str(user_id), session_id=session.session_id)

    def holds(self, user_id: str) -> bool:
        with self._lock:
            return bool(self._sessions.get(str(user_id)))

    def sessions_for(self, user_id: str) -> list[Session]:
        with self._lock:
            return list(self._sessions.get(str(user_id), []))

    def _first_delivery(self, session: Session, message_id: str | None) -> bool:
        if message_id is None:
            return True
        with self._lock:
            order, seen = self._seen.setdefault(session.session_id, (deque(), set()))
            if message_id in seen:
                return False
            seen.add(message_id)
            order.append(message_id)
            if len(order) > self._remembered:
                seen.discard(order.popleft())
            return True

    def _deliver_to(self, user_id: str, sessions: list[Session], message: dict) -> int:
        delivered = 0
        for session in sessions:
            if not self._first_delivery(session, message.get("message_id")):
                continue
            try:
                session.deliver(message)
                delivered += 1
            except Exception as exc:
                logger.error(
                    "Failed to push to session",
                    user_id=str(user_id),
                    session_id=session.session_id,
                    error=str(exc),
                )
        return delivered

    def deliver(self, user_id: str, message: dict) -> int:
        """Push ``message`` to the user's local sessions; returns how many received it."""
        return self._deliver_to(user_id, self.sessions_for(user_id), message)

    def broadcast(self, message: dict) -> int:
        with self._lock:
            targets = [(user_id, list(sessions)) for user_id, sessions in self._sessions.items()]
        return sum(self._deliver_to(user_id, sessions, message) for user_id, sessions in targets)

    def connected_users(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

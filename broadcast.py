"""Per-session publish/subscribe over long-lived viewer connections.

A connection is anything with ``send(event, data)``. Two transports exist:
``StreamConnection`` feeds a server-sent event response, ``SocketConnection``
emits to one Socket.IO client. The hub does not care which one it holds.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any

from errors import DeliveryError
from payload import redact_for_student

logger = logging.getLogger(__name__)

ROLE_TEACHER = "teacher"
ROLE_STUDENT = "student"

TEACHER_EVENT = "session"
STUDENT_EVENT = "update"


def format_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class StreamConnection:
    """Bounded outbox drained by an event-stream response generator."""

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: queue.Queue[str | None] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, event: str, data: Any) -> None:
        if self.closed:
            raise DeliveryError("stream closed")
        try:
            self._queue.put_nowait(format_sse(event, data))
        except queue.Full as e:
            raise DeliveryError("stream outbox full") from e

    def next_message(self, timeout: float | None = None) -> str | None:
        """Block for the next frame. Raises ``queue.Empty`` on timeout, ``None`` once closed."""
        if self.closed:
            return None
        return self._queue.get(timeout=timeout)

    def close(self) -> None:
        self._closed.set()
        try:
            # wake a generator blocked in next_message
            self._queue.put_nowait(None)
        except queue.Full:
            pass


@dataclass(frozen=True)
class SocketConnection:
    """One Socket.IO client, identified by its sid."""

    sid: str
    server: Any = field(compare=False, hash=False, repr=False)

    def send(self, event: str, data: Any) -> None:
        self.server.emit(event, data, to=self.sid)


@dataclass(frozen=True)
class Subscriber:
    connection: Any
    role: str

    @property
    def is_teacher(self) -> bool:
        return self.role == ROLE_TEACHER


class BroadcastHub:
    def __init__(self) -> None:
        self._sessions: dict[int, dict[Any, Subscriber]] = {}
        self._lock = threading.RLock()

    def subscribe(self, session_id: int, connection, role: str = ROLE_STUDENT) -> Subscriber:
        if role not in (ROLE_TEACHER, ROLE_STUDENT):
            raise ValueError(f"unknown role {role!r}")
        subscriber = Subscriber(connection=connection, role=role)
        with self._lock:
            self._sessions.setdefault(int(session_id), {})[connection] = subscriber
        logger.debug("subscribed %s to session %s as %s", connection, session_id, role)
        return subscriber

    def unsubscribe(self, session_id: int, connection) -> None:
        with self._lock:
            subscribers = self._sessions.get(int(session_id))
            if not subscribers:
                return
            subscribers.pop(connection, None)
            if not subscribers:
                del self._sessions[int(session_id)]

    def unsubscribe_all(self, connection) -> list[int]:
        """Drop a connection from every session; return the affected ids."""
        removed = []
        with self._lock:
            for session_id in list(self._sessions):
                if connection in self._sessions[session_id]:
                    self.unsubscribe(session_id, connection)
                    removed.append(session_id)
        return removed

    def subscribers(self, session_id: int) -> list[Subscriber]:
        with self._lock:
            return list(self._sessions.get(int(session_id), {}).values())

    def subscriber_count(self, session_id: int) -> int:
        with self._lock:
            return len(self._sessions.get(int(session_id), {}))

    def session_ids(self) -> list[int]:
        with self._lock:
            return list(self._sessions)

    def deliver(self, subscriber: Subscriber, snapshot: dict, student_view: dict | None = None) -> None:
        """Send one subscriber the view its role allows. Delivery errors propagate."""
        if subscriber.is_teacher:
            subscriber.connection.send(TEACHER_EVENT, snapshot)
        else:
            subscriber.connection.send(STUDENT_EVENT, student_view or redact_for_student(snapshot))

    def publish(self, session_id: int, snapshot: dict) -> int:
        """Send a role-appropriate view of ``snapshot`` to every subscriber.

        Returns the number of successful deliveries. A failing subscriber is
        logged and skipped.
        """
        subscribers = self.subscribers(session_id)
        if not subscribers:
            return 0

        student_view = None
        delivered = 0
        for subscriber in subscribers:
            if student_view is None and not subscriber.is_teacher:
                student_view = redact_for_student(snapshot)
            try:
                self.deliver(subscriber, snapshot, student_view)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "Error writing update for session %s to %s: %s",
                    session_id,
                    subscriber.connection,
                    e,
                )
        return delivered

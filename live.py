"""Process-wide live state, owned by the Flask app rather than module globals."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager

from flask import current_app

from broadcast import BroadcastHub
from payload import RECENT_ANSWERS_LIMIT, build_snapshot
from presence import PresenceTracker

logger = logging.getLogger(__name__)


class _OrderSlot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class LiveState:
    """Subscriber registry, presence map and the broadcast entry point.

    ``broadcast_session`` builds a fresh snapshot after a mutation has been
    committed and publishes it. A per-session lock spans build and publish,
    and ``attach`` delivers a newcomer's initial snapshot under the same
    lock, so a subscriber never sees an older snapshot after a newer one.
    A session's lock is dropped once nobody holds it and nobody is subscribed.
    """

    def __init__(self, session_factory, presence_timeout=0, recent_limit=RECENT_ANSWERS_LIMIT):
        self.hub = BroadcastHub()
        self.presence = PresenceTracker(timeout_seconds=presence_timeout)
        self.recent_limit = recent_limit
        self._session_factory = session_factory
        self._order_slots = {}
        self._slots_guard = threading.Lock()

    @contextmanager
    def _ordered(self, session_id):
        key = int(session_id)
        with self._slots_guard:
            slot = self._order_slots.get(key)
            if slot is None:
                slot = self._order_slots[key] = _OrderSlot()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._slots_guard:
                slot.users -= 1
                self._prune(key)

    def _prune(self, key):
        # caller holds _slots_guard
        slot = self._order_slots.get(key)
        if slot is not None and slot.users == 0 and not self.hub.subscriber_count(key):
            del self._order_slots[key]

    def ordered_session_ids(self):
        with self._slots_guard:
            return list(self._order_slots)

    def snapshot(self, session_id, db=None):
        if db is not None:
            return build_snapshot(db, session_id, self.presence, self.recent_limit)
        db = self._session_factory()
        try:
            return build_snapshot(db, session_id, self.presence, self.recent_limit)
        finally:
            db.close()

    # -------------------------------------------------
    # SUBSCRIPTIONS
    # -------------------------------------------------
    def attach(self, session_id, connection, role, db=None):
        """Subscribe a connection and send it the current snapshot.

        Returns the subscriber. Later broadcasts reach the connection only
        after its initial snapshot. If that first delivery fails the
        connection is unsubscribed again and the error propagates.
        """
        with self._ordered(session_id):
            subscriber = self.hub.subscribe(session_id, connection, role)
            try:
                payload = self.snapshot(session_id, db=db)
                if payload is not None:
                    self.hub.deliver(subscriber, payload)
            except Exception:
                self.hub.unsubscribe(session_id, connection)
                raise
        return subscriber

    def detach(self, session_id, connection):
        self.hub.unsubscribe(session_id, connection)
        with self._slots_guard:
            self._prune(int(session_id))

    def detach_all(self, connection):
        removed = self.hub.unsubscribe_all(connection)
        with self._slots_guard:
            for session_id in removed:
                self._prune(session_id)
        return removed

    # -------------------------------------------------
    # BROADCAST
    # -------------------------------------------------
    def broadcast_session(self, session_id):
        """Publish the current snapshot of a session. Never raises."""
        if session_id is None:
            return 0
        try:
            with self._ordered(session_id):
                if not self.hub.subscriber_count(session_id):
                    return 0
                payload = self.snapshot(session_id)
                if payload is None:
                    return 0
                return self.hub.publish(session_id, payload)
        except Exception:
            logger.exception("broadcast failed for session %s", session_id)
            return 0


def get_live() -> LiveState:
    return current_app.extensions["live"]

"""Tests for the per-session broadcast hub and its transports."""

import json
import queue

import pytest

from broadcast import (
    ROLE_STUDENT,
    ROLE_TEACHER,
    BroadcastHub,
    SocketConnection,
    StreamConnection,
    format_sse,
)
from errors import DeliveryError
from tests.conftest import RecordingConnection


def _snapshot():
    return {
        "sess": {"id": 5},
        "currentQuestion": {"id": 1, "vraag": "2+2?", "antwoord": "4"},
        "leerlingen": [{"id": 3, "naam": "Anna", "online": True, "focused": True, "last_seen": None}],
        "scoreboard": [{"leerling_id": 3, "naam": "Anna", "points": 10, "answers": 1}],
        "recentAnswers": [{"id": 9, "leerling_id": 3, "leerling": "Anna", "antwoord": "4", "status": "goed"}],
    }


class TestSubscriptions:
    """Registry bookkeeping."""

    def test_subscribe_and_count(self):
        hub = BroadcastHub()
        hub.subscribe(5, RecordingConnection(), ROLE_TEACHER)
        hub.subscribe(5, RecordingConnection())
        assert hub.subscriber_count(5) == 2
        assert hub.subscriber_count(6) == 0

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            BroadcastHub().subscribe(5, RecordingConnection(), "admin")

    def test_empty_session_is_removed(self):
        hub = BroadcastHub()
        conn = RecordingConnection()
        hub.subscribe(5, conn)
        hub.unsubscribe(5, conn)
        assert hub.session_ids() == []

    def test_unsubscribe_unknown_is_noop(self):
        hub = BroadcastHub()
        hub.unsubscribe(5, RecordingConnection())
        assert hub.session_ids() == []

    def test_unsubscribe_all(self):
        hub = BroadcastHub()
        conn = RecordingConnection()
        other = RecordingConnection()
        hub.subscribe(5, conn)
        hub.subscribe(6, conn)
        hub.subscribe(6, other)
        assert sorted(hub.unsubscribe_all(conn)) == [5, 6]
        assert hub.session_ids() == [6]

    def test_resubscribe_replaces_role(self):
        hub = BroadcastHub()
        conn = RecordingConnection()
        hub.subscribe(5, conn, ROLE_STUDENT)
        hub.subscribe(5, conn, ROLE_TEACHER)
        subscribers = hub.subscribers(5)
        assert len(subscribers) == 1
        assert subscribers[0].is_teacher


class TestPublish:
    """Delivery by role and isolation of failures."""

    def test_roles_receive_their_views(self):
        hub = BroadcastHub()
        teacher = RecordingConnection()
        student = RecordingConnection()
        hub.subscribe(5, teacher, ROLE_TEACHER)
        hub.subscribe(5, student, ROLE_STUDENT)

        assert hub.publish(5, _snapshot()) == 2

        event, data = teacher.events[0]
        assert event == "session"
        assert data["currentQuestion"]["antwoord"] == "4"

        event, data = student.events[0]
        assert event == "update"
        assert "antwoord" not in data["currentQuestion"]
        assert "naam" not in data["leerlingen"][0]
        assert "leerling" not in data["recentAnswers"][0]

    def test_other_sessions_untouched(self):
        hub = BroadcastHub()
        conn = RecordingConnection()
        hub.subscribe(6, conn)
        assert hub.publish(5, _snapshot()) == 0
        assert conn.events == []

    def test_failing_subscriber_does_not_block_others(self):
        hub = BroadcastHub()
        broken = RecordingConnection(fail=True)
        healthy = RecordingConnection()
        hub.subscribe(5, broken, ROLE_TEACHER)
        hub.subscribe(5, healthy, ROLE_TEACHER)
        assert hub.publish(5, _snapshot()) == 1
        assert len(healthy.events) == 1

    def test_deliver_to_one_subscriber(self):
        hub = BroadcastHub()
        teacher = hub.subscribe(5, RecordingConnection(), ROLE_TEACHER)
        student = hub.subscribe(5, RecordingConnection(), ROLE_STUDENT)

        hub.deliver(student, _snapshot())
        assert teacher.connection.events == []
        event, data = student.connection.events[0]
        assert event == "update"
        assert "antwoord" not in data["currentQuestion"]

        hub.deliver(teacher, _snapshot())
        assert teacher.connection.events == [("session", _snapshot())]

    def test_deliver_propagates_errors(self):
        hub = BroadcastHub()
        broken = hub.subscribe(5, RecordingConnection(fail=True), ROLE_TEACHER)
        with pytest.raises(RuntimeError):
            hub.deliver(broken, _snapshot())


class TestStreamConnection:
    """Server-sent event outbox."""

    def test_frames_are_sse(self):
        conn = StreamConnection()
        conn.send("session", {"a": 1})
        frame = conn.next_message(timeout=0.1)
        assert frame == format_sse("session", {"a": 1})
        assert frame.startswith("event: session\ndata: ")
        assert json.loads(frame.split("data: ", 1)[1]) == {"a": 1}

    def test_timeout_raises_empty(self):
        with pytest.raises(queue.Empty):
            StreamConnection().next_message(timeout=0.01)

    def test_closed_connection(self):
        conn = StreamConnection()
        conn.close()
        assert conn.next_message(timeout=0.01) is None
        with pytest.raises(DeliveryError):
            conn.send("session", {})

    def test_full_outbox(self):
        conn = StreamConnection(maxsize=1)
        conn.send("session", {})
        with pytest.raises(DeliveryError):
            conn.send("session", {})


class TestSocketConnection:
    """Socket.IO transport addresses one sid."""

    def test_emits_to_sid(self):
        calls = []

        class Server:
            def emit(self, event, data, to=None):
                calls.append((event, data, to))

        SocketConnection(sid="abc", server=Server()).send("update", {"x": 1})
        assert calls == [("update", {"x": 1}, "abc")]

    def test_equality_ignores_server(self):
        assert SocketConnection("abc", object()) == SocketConnection("abc", object())
        assert hash(SocketConnection("abc", object())) == hash(SocketConnection("abc", None))

"""Tests for the Socket.IO transport."""

import pytest

from sockets import socketio
from tests.conftest import make_token


@pytest.fixture
def session_id(client, auth_headers, seeded):
    res = client.post(
        "/sessies",
        json={"klas_id": seeded.klas_id, "vragenlijst_id": seeded.vragenlijst_id},
        headers=auth_headers,
    )
    return res.get_json()["id"]


def _events(sio_client, name):
    return [msg["args"][0] for msg in sio_client.get_received() if msg["name"] == name]


class TestJoinSession:
    """Joining a session room by id, optionally as its teacher."""

    def test_teacher_receives_full_snapshot(self, app, live, session_id):
        sio = socketio.test_client(app)
        sio.emit("join_session", {"sessie_id": session_id, "token": make_token(1)})

        snapshots = _events(sio, "session")
        assert snapshots[0]["sess"]["id"] == session_id
        assert live.hub.subscribers(session_id)[0].is_teacher
        sio.disconnect()

    def test_student_receives_redacted_updates(self, app, client, auth_headers, live, session_id):
        sio = socketio.test_client(app)
        sio.emit("join_session", {"sessie_id": session_id})
        sio.get_received()

        client.post(f"/sessies/{session_id}/send_question", headers=auth_headers)

        updates = _events(sio, "update")
        assert updates
        assert updates[-1]["currentQuestion"] is not None
        assert "antwoord" not in updates[-1]["currentQuestion"]
        sio.disconnect()

    def test_foreign_teacher_rejected(self, app, live, session_id):
        sio = socketio.test_client(app)
        sio.emit("join_session", {"sessie_id": session_id, "token": make_token(2)})
        assert _events(sio, "system") == [{"error": "unauthorized"}]
        assert live.hub.subscriber_count(session_id) == 0
        sio.disconnect()

    def test_unknown_session(self, app, seeded):
        sio = socketio.test_client(app)
        sio.emit("join_session", {"sessie_id": 999})
        assert _events(sio, "system") == [{"error": "session not found"}]
        sio.disconnect()

    def test_disconnect_unsubscribes(self, app, live, session_id):
        sio = socketio.test_client(app)
        sio.emit("join_session", {"sessie_id": session_id})
        assert live.hub.subscriber_count(session_id) == 1
        sio.disconnect()
        assert live.hub.subscriber_count(session_id) == 0

    def test_leave_session(self, app, live, session_id):
        sio = socketio.test_client(app)
        sio.emit("join_session", {"sessie_id": session_id})
        sio.emit("leave_session", {"sessie_id": session_id})
        assert live.hub.subscriber_count(session_id) == 0
        sio.disconnect()

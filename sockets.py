import logging

from flask import request
from flask_socketio import SocketIO, emit

from auth import decode_teacher_token
from broadcast import ROLE_STUDENT, ROLE_TEACHER, SocketConnection
from db import SessionLocal
from errors import QuizError
from live import get_live
from models import QuizSession
from utils import to_int

logger = logging.getLogger(__name__)

socketio = SocketIO(cors_allowed_origins="*", async_mode="threading")


def _connection():
    return SocketConnection(sid=request.sid, server=socketio)


@socketio.on("join_session")
def handle_join(data):
    data = data or {}
    session_id = to_int(data.get("sessie_id") or data.get("session_id"))
    if not session_id:
        emit("system", {"error": "sessie_id required"})
        return

    db = SessionLocal()
    try:
        sess = db.get(QuizSession, session_id)
        if sess is None:
            emit("system", {"error": "session not found"})
            return

        role = ROLE_STUDENT
        token = data.get("token")
        if token:
            try:
                teacher_id = decode_teacher_token(token)
            except QuizError as e:
                emit("system", {"error": e.message})
                return
            if teacher_id != sess.docent_id:
                emit("system", {"error": "unauthorized"})
                return
            role = ROLE_TEACHER

        get_live().attach(session_id, _connection(), role, db=db)
    finally:
        db.close()

    logger.info("socket %s joined session %s as %s", request.sid, session_id, role)


@socketio.on("leave_session")
def handle_leave(data):
    session_id = to_int((data or {}).get("sessie_id") or (data or {}).get("session_id"))
    if session_id:
        get_live().detach(session_id, _connection())


@socketio.on("disconnect")
def handle_disconnect(*args):
    get_live().detach_all(_connection())

import csv
import io
import logging
import queue

from flask import Blueprint, Response, current_app, jsonify, request

from auth import decode_teacher_token, extract_token, require_auth
from broadcast import ROLE_STUDENT, ROLE_TEACHER, StreamConnection
from db import db_session
from errors import AuthenticationError, NotFound, Unauthorized
from live import get_live
from models import QuizSession
from payload import answer_count, export_rows, recent_answer_rows, scoreboard_rows
from session_engine import (
    clear_current_question,
    grade_answer,
    owned_session,
    remove_student,
    send_next_question,
    start_session,
    stop_session,
)
from utils import require_ints, to_int

logger = logging.getLogger(__name__)

sessions_bp = Blueprint("sessions", __name__)

EXPORT_HEADER = ["Leerling", "Vraag", "Gegeven Antwoord", "Status", "Datum en Tijd"]


# -------------------------------------------------
# START SESSION
# -------------------------------------------------
@sessions_bp.post("/sessies")
@require_auth
def create_session():
    data = request.get_json(silent=True) or {}
    klas_id, vragenlijst_id = require_ints(data, "klas_id", "vragenlijst_id")
    with db_session() as db:
        sess = start_session(db, get_live(), request.teacher_id, klas_id, vragenlijst_id)
        return jsonify({"ok": True, "id": sess.id})


# -------------------------------------------------
# SESSION DETAILS (full teacher snapshot)
# -------------------------------------------------
@sessions_bp.get("/sessies/<int:session_id>")
@require_auth
def get_session(session_id):
    with db_session() as db:
        owned_session(db, session_id, request.teacher_id)
        return jsonify(get_live().snapshot(session_id, db=db))


# -------------------------------------------------
# QUESTION FLOW
# -------------------------------------------------
@sessions_bp.post("/sessies/<int:session_id>/send_question")
@require_auth
def send_question(session_id):
    with db_session() as db:
        dispatch = send_next_question(db, get_live(), session_id, request.teacher_id)
        return jsonify(dispatch.to_dict())


@sessions_bp.post("/sessies/<int:session_id>/clear_question")
@require_auth
def clear_question(session_id):
    with db_session() as db:
        clear_current_question(db, get_live(), session_id, request.teacher_id)
        return jsonify({"ok": True})


@sessions_bp.post("/sessies/<int:session_id>/stop")
@require_auth
def stop(session_id):
    with db_session() as db:
        stop_session(db, get_live(), session_id, request.teacher_id)
        return jsonify({"ok": True})


# -------------------------------------------------
# GRADING
# -------------------------------------------------
@sessions_bp.post("/grade-answer")
@require_auth
def grade():
    data = request.get_json(silent=True) or {}
    resultaat_id = require_ints(data, "resultaat_id")
    with db_session() as db:
        grade_answer(db, get_live(), resultaat_id, data.get("status"), request.teacher_id)
        return jsonify({"ok": True})


# -------------------------------------------------
# READ-ONLY PROJECTIONS
# -------------------------------------------------
@sessions_bp.get("/sessies/<int:session_id>/scoreboard")
@require_auth
def scoreboard(session_id):
    with db_session() as db:
        sess = owned_session(db, session_id, request.teacher_id)
        return jsonify({"ok": True, "rows": scoreboard_rows(db, sess)})


@sessions_bp.get("/sessies/<int:session_id>/recent-answers")
@require_auth
def recent_answers(session_id):
    with db_session() as db:
        owned_session(db, session_id, request.teacher_id)
        limit = current_app.config["RECENT_ANSWERS_LIMIT"]
        return jsonify({"ok": True, "rows": recent_answer_rows(db, session_id, limit)})


@sessions_bp.get("/sessies/<int:session_id>/answer_count")
@require_auth
def current_answer_count(session_id):
    with db_session() as db:
        sess = owned_session(db, session_id, request.teacher_id)
        count = answer_count(db, sess.id, sess.current_question_id)
    return Response(str(count), mimetype="text/plain")


@sessions_bp.get("/sessies/<int:session_id>/export")
@require_auth
def export(session_id):
    with db_session() as db:
        owned_session(db, session_id, request.teacher_id)
        rows = export_rows(db, session_id)

    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for r in rows:
        writer.writerow([
            r["leerling"] or "",
            r["vraag"] or "",
            r["gegeven_antwoord"] or "",
            r["status"] or "",
            r["created_at"] or "",
        ])

    return Response(
        out.getvalue(),
        mimetype="text/csv",
        headers={
            "Content-Type": "text/csv; charset=utf-8",
            "Content-Disposition": f"attachment; filename=sessie_{session_id}_resultaten.csv",
        },
    )


# -------------------------------------------------
# STUDENT REMOVAL
# -------------------------------------------------
@sessions_bp.delete("/sessies/<int:session_id>/leerling/<int:leerling_id>")
@require_auth
def delete_student(session_id, leerling_id):
    with db_session() as db:
        remove_student(db, get_live(), session_id, leerling_id, request.teacher_id)
        return jsonify({"ok": True})


# -------------------------------------------------
# EVENT STREAM
# -------------------------------------------------
@sessions_bp.get("/sessies/<int:session_id>/stream")
def stream(session_id):
    token = extract_token()
    teacher_id = None
    if token:
        try:
            teacher_id = decode_teacher_token(token)
        except AuthenticationError:
            raise Unauthorized("invalid token")

    live = get_live()
    with db_session() as db:
        sess = db.get(QuizSession, session_id)
        if sess is None:
            raise NotFound("session not found")
        # a token must belong to the teacher who owns this session
        if teacher_id is not None and sess.docent_id != teacher_id:
            raise Unauthorized()
        role = ROLE_TEACHER if teacher_id is not None else ROLE_STUDENT

        connection = StreamConnection(maxsize=current_app.config["STREAM_QUEUE_SIZE"])
        # the initial snapshot is queued ahead of any later broadcast
        live.attach(session_id, connection, role, db=db)

    keepalive = current_app.config["STREAM_KEEPALIVE_SECONDS"]
    logger.info("stream opened for session %s as %s", session_id, role)

    def close():
        connection.close()
        live.detach(session_id, connection)

    def generate():
        try:
            yield "\n"
            while True:
                try:
                    message = connection.next_message(timeout=keepalive)
                except queue.Empty:
                    yield ": ping\n\n"
                    continue
                if message is None:
                    break
                yield message
        finally:
            close()

    response = Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    response.call_on_close(close)
    return response


# -------------------------------------------------
# NOTIFY HOOK (external writers)
# -------------------------------------------------
@sessions_bp.post("/notify-session-update")
def notify_session_update():
    data = request.get_json(silent=True) or {}
    secret = data.get("secret") or request.args.get("secret") or request.headers.get("X-Update-Secret")
    expected = current_app.config.get("UPDATE_SECRET")
    if expected and secret != expected:
        raise Unauthorized("invalid secret")

    session_id = to_int(data.get("sessie_id"))
    if not session_id:
        return jsonify({"success": False, "error": "sessie_id required"}), 400

    get_live().broadcast_session(session_id)
    return jsonify({"ok": True})

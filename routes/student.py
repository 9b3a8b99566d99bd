import logging

from flask import Blueprint, request, jsonify

from db import db_session
from errors import InvalidInput, NotFound
from live import get_live
from models import ClassGroup, Student
from payload import student_state
from session_engine import active_session_for_class, submit_answer
from utils import require_ints, require_text, to_int

logger = logging.getLogger(__name__)

student_bp = Blueprint("student", __name__)


# -------------------------------------------------
# JOIN CLASS WITH CODE
# -------------------------------------------------
@student_bp.post("/leerling/join")
def join_class():
    data = request.get_json(silent=True) or {}
    code = str(data.get("klascode") or data.get("join_klascode") or "").strip().upper()
    naam = str(data.get("naam") or "").strip()

    if not code or not naam:
        raise InvalidInput("klascode en naam required")
    if len(naam) > 255:
        raise InvalidInput("naam too long")

    with db_session() as db:
        klas = db.query(ClassGroup).filter_by(klascode=code).first()
        if not klas:
            raise NotFound("klas not found")

        student = Student(klas_id=klas.id, naam=naam)
        db.add(student)
        db.commit()
        logger.info("leerling %s joined klas %s", student.id, klas.id)

        # roster changed for anyone watching the active session
        sess = active_session_for_class(db, klas.id)
        if sess is not None:
            get_live().broadcast_session(sess.id)

        return jsonify({"ok": True, "leerling_id": student.id, "klas_id": klas.id, "klas_code": code})


# -------------------------------------------------
# STUDENT STATE (active session, score, own answers)
# -------------------------------------------------
@student_bp.get("/student/state")
def state():
    leerling_id, klas_id = require_ints(request.args, "leerling_id", "klas_id")
    with db_session() as db:
        leerling = db.query(Student).filter_by(id=leerling_id, klas_id=klas_id).first()
        if not leerling:
            raise NotFound("leerling not found")
        sess = active_session_for_class(db, klas_id)
        return jsonify(student_state(db, leerling, sess))


# -------------------------------------------------
# SUBMIT ANSWER
# -------------------------------------------------
@student_bp.post("/sessies/<int:session_id>/answer")
def answer(session_id):
    data = request.get_json(silent=True) or {}
    leerling_id, vraag_id = require_ints(data, "leerling_id", "vraag_id")
    antwoord = require_text(data, "antwoord")

    with db_session() as db:
        submission = submit_answer(db, get_live(), session_id, leerling_id, vraag_id, antwoord)
        return jsonify(submission.to_dict())


# -------------------------------------------------
# PRESENCE
# -------------------------------------------------
@student_bp.post("/status-update")
def status_update():
    data = request.get_json(silent=True) or {}
    leerling_id = to_int(data.get("leerling_id"))
    klas_id = to_int(data.get("klas_id"))

    if leerling_id:
        live = get_live()
        live.presence.update(leerling_id, data.get("status"))
        if klas_id:
            with db_session() as db:
                sess = active_session_for_class(db, klas_id)
                session_id = sess.id if sess else None
            live.broadcast_session(session_id)

    return jsonify({"ok": True})

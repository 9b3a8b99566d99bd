import logging

from flask import Blueprint, request, jsonify

from auth import require_auth
from db import db_session
from errors import NotFound, StoreFailure
from live import get_live
from models import ClassGroup, Question, QuestionList, QuizSession, Student
from session_engine import active_session_for_class, owned_class
from utils import generate_code, require_ints, require_text

logger = logging.getLogger(__name__)

teacher_bp = Blueprint("teacher", __name__)


def _klas_dict(klas):
    return {
        "id": klas.id,
        "docent_id": klas.docent_id,
        "naam": klas.naam,
        "klascode": klas.klascode,
        "vak": klas.vak,
        "created_at": klas.created_at.isoformat() if klas.created_at else None,
    }


def _vraag_dict(vraag):
    return {
        "id": vraag.id,
        "klas_id": vraag.klas_id,
        "vragenlijst_id": vraag.vragenlijst_id,
        "vraag": vraag.vraag,
        "antwoord": vraag.antwoord,
    }


def _owned_list(db, vragenlijst_id, teacher_id):
    lijst = db.get(QuestionList, vragenlijst_id)
    if not lijst:
        raise NotFound("vragenlijst not found")
    owned_class(db, lijst.klas_id, teacher_id)
    return lijst


def _owned_question(db, vraag_id, teacher_id):
    vraag = db.get(Question, vraag_id)
    if not vraag:
        raise NotFound("vraag not found")
    owned_class(db, vraag.klas_id, teacher_id)
    return vraag


# -------------------------------------------------
# CLASS MANAGEMENT
# -------------------------------------------------
@teacher_bp.post("/create-klas")
@require_auth
def create_class():
    data = request.get_json(silent=True) or {}
    naam = require_text(data, "naam", max_length=255)
    vak = str(data.get("vak") or "").strip() or None

    with db_session() as db:
        # generate unique code (retry if duplicate)
        max_attempts = 10
        code = None
        for attempt in range(max_attempts):
            code = generate_code()
            if not db.query(ClassGroup.id).filter_by(klascode=code).first():
                break
            if attempt == max_attempts - 1:
                raise StoreFailure("failed to generate unique klascode")

        klas = ClassGroup(docent_id=request.teacher_id, naam=naam, klascode=code, vak=vak)
        db.add(klas)
        db.commit()
        db.refresh(klas)
        logger.info("klas %s created by docent %s", klas.id, request.teacher_id)
        return jsonify({"ok": True, "klas": _klas_dict(klas)})


@teacher_bp.get("/klassen")
@require_auth
def list_classes():
    with db_session() as db:
        classes = (
            db.query(ClassGroup)
            .filter_by(docent_id=request.teacher_id)
            .order_by(ClassGroup.id.desc())
            .all()
        )
        return jsonify({
            "ok": True,
            "klassen": [
                dict(_klas_dict(c), student_count=len(c.students))
                for c in classes
            ],
        })


@teacher_bp.get("/klas/<int:klas_id>")
@require_auth
def class_details(klas_id):
    with db_session() as db:
        klas = db.query(ClassGroup).filter_by(id=klas_id, docent_id=request.teacher_id).first()
        if not klas:
            raise NotFound("klas not found")

        leerlingen = db.query(Student).filter_by(klas_id=klas_id).order_by(Student.naam).all()
        lijsten = db.query(QuestionList).filter_by(klas_id=klas_id).order_by(QuestionList.id.desc()).all()
        active = active_session_for_class(db, klas_id)
        return jsonify({
            "klas": _klas_dict(klas),
            "leerlingen": [{"id": s.id, "naam": s.naam} for s in leerlingen],
            "vragenlijsten": [{"id": v.id, "naam": v.naam} for v in lijsten],
            "actieve_sessie_id": active.id if active else None,
        })


@teacher_bp.post("/delete-klas")
@require_auth
def delete_class():
    data = request.get_json(silent=True) or {}
    klas_id = require_ints(data, "id")

    with db_session() as db:
        klas = owned_class(db, klas_id, request.teacher_id)
        session_ids = [row[0] for row in db.query(QuizSession.id).filter_by(klas_id=klas_id)]
        student_ids = [s.id for s in klas.students]

        # students, lists, questions, sessions and results go in one transaction
        db.delete(klas)
        db.commit()
        logger.info("klas %s deleted with %d sessions", klas_id, len(session_ids))

    live = get_live()
    for leerling_id in student_ids:
        live.presence.forget(leerling_id)
    for session_id in session_ids:
        live.broadcast_session(session_id)
    return jsonify({"ok": True})


# -------------------------------------------------
# STUDENT MANAGEMENT
# -------------------------------------------------
@teacher_bp.post("/delete-leerlingen")
@require_auth
def delete_students():
    data = request.get_json(silent=True) or {}
    klas_id = require_ints(data, "klas_id")

    with db_session() as db:
        klas = owned_class(db, klas_id, request.teacher_id)
        removed = [s.id for s in klas.students]
        klas.students.clear()
        db.commit()
        active = active_session_for_class(db, klas_id)
        session_id = active.id if active else None

    live = get_live()
    for leerling_id in removed:
        live.presence.forget(leerling_id)
    live.broadcast_session(session_id)
    return jsonify({"ok": True})


# -------------------------------------------------
# QUESTION LISTS
# -------------------------------------------------
@teacher_bp.post("/vragenlijst")
@require_auth
def create_list():
    data = request.get_json(silent=True) or {}
    klas_id = require_ints(data, "klas_id")
    naam = require_text(data, "naam", max_length=255)

    with db_session() as db:
        owned_class(db, klas_id, request.teacher_id)
        lijst = QuestionList(klas_id=klas_id, naam=naam)
        db.add(lijst)
        db.commit()
        return jsonify({"ok": True, "id": lijst.id})


@teacher_bp.get("/vragenlijst/<int:vragenlijst_id>")
@require_auth
def get_list(vragenlijst_id):
    with db_session() as db:
        lijst = _owned_list(db, vragenlijst_id, request.teacher_id)
        return jsonify({
            "id": lijst.id,
            "klas_id": lijst.klas_id,
            "naam": lijst.naam,
            "vragen": [_vraag_dict(v) for v in lijst.questions],
        })


@teacher_bp.put("/vragenlijst/<int:vragenlijst_id>")
@require_auth
def update_list(vragenlijst_id):
    data = request.get_json(silent=True) or {}
    naam = require_text(data, "naam", max_length=255)

    with db_session() as db:
        lijst = _owned_list(db, vragenlijst_id, request.teacher_id)
        lijst.naam = naam
        db.commit()
        return jsonify({"ok": True})


@teacher_bp.delete("/vragenlijst/<int:vragenlijst_id>")
@require_auth
def delete_list(vragenlijst_id):
    with db_session() as db:
        lijst = _owned_list(db, vragenlijst_id, request.teacher_id)
        # sessions running this list end with it
        session_ids = [row[0] for row in db.query(QuizSession.id).filter_by(vragenlijst_id=vragenlijst_id)]
        for sess in db.query(QuizSession).filter_by(vragenlijst_id=vragenlijst_id):
            db.delete(sess)
        db.delete(lijst)
        db.commit()

    live = get_live()
    for session_id in session_ids:
        live.broadcast_session(session_id)
    return jsonify({"ok": True})


# -------------------------------------------------
# QUESTIONS
# -------------------------------------------------
@teacher_bp.post("/vragenlijst/<int:vragenlijst_id>/vraag")
@require_auth
def add_question(vragenlijst_id):
    data = request.get_json(silent=True) or {}
    vraag = require_text(data, "vraag")
    antwoord = require_text(data, "antwoord")

    with db_session() as db:
        lijst = _owned_list(db, vragenlijst_id, request.teacher_id)
        question = Question(klas_id=lijst.klas_id, vragenlijst_id=lijst.id, vraag=vraag, antwoord=antwoord)
        db.add(question)
        db.commit()
        return jsonify({"ok": True, "id": question.id})


@teacher_bp.put("/vragen/<int:vraag_id>")
@require_auth
def update_question(vraag_id):
    data = request.get_json(silent=True) or {}
    vraag = require_text(data, "vraag")
    antwoord = require_text(data, "antwoord")

    with db_session() as db:
        question = _owned_question(db, vraag_id, request.teacher_id)
        question.vraag = vraag
        question.antwoord = antwoord
        db.commit()
        return jsonify({"ok": True})


@teacher_bp.delete("/vragen/<int:vraag_id>")
@require_auth
def delete_question(vraag_id):
    with db_session() as db:
        question = _owned_question(db, vraag_id, request.teacher_id)
        affected = [row[0] for row in db.query(QuizSession.id).filter_by(current_question_id=vraag_id)]
        db.query(QuizSession).filter_by(current_question_id=vraag_id).update(
            {QuizSession.current_question_id: None, QuizSession.question_start_time: None},
            synchronize_session=False,
        )
        # results and dispatch log rows cascade
        db.delete(question)
        db.commit()

    live = get_live()
    for session_id in affected:
        live.broadcast_session(session_id)
    return jsonify({"ok": True})



"""Session snapshots for live viewers and the read-only projections.

A snapshot is a plain JSON-ready dict. Teachers receive it as built; students
receive ``redact_for_student(snapshot)``, which drops the correct answer and
every field that identifies who gave which answer.
"""

from __future__ import annotations

from sqlalchemy import case, desc, distinct, func, or_

from models import (
    STATUS_UNKNOWN,
    ClassGroup,
    Question,
    QuizSession,
    Result,
    Student,
)

RECENT_ANSWERS_LIMIT = 50


def iso(value):
    return value.isoformat() if value is not None else None


# -------------------------------------------------
# ASKED-SET
# -------------------------------------------------
def asked_question_ids(db, session_id) -> set[int]:
    """Questions already posed in a session, derived from its results only.

    A question that was sent and cleared without answers stays eligible.
    """
    answered = db.query(Result.vraag_id).filter(Result.sessie_id == session_id).distinct()
    return {row[0] for row in answered if row[0] is not None}


# -------------------------------------------------
# PROJECTIONS
# -------------------------------------------------
def serialize_session(sess: QuizSession, klas: ClassGroup | None, asked: set[int]) -> dict:
    return {
        "id": sess.id,
        "klas_id": sess.klas_id,
        "docent_id": sess.docent_id,
        "vragenlijst_id": sess.vragenlijst_id,
        "actief": bool(sess.actief),
        "started_at": iso(sess.started_at),
        "ended_at": iso(sess.ended_at),
        "current_question_id": sess.current_question_id,
        "question_start_time": iso(sess.question_start_time),
        "round_seen": sorted(asked),
        "klasnaam": klas.naam if klas else None,
        "klascode": klas.klascode if klas else None,
    }


def scoreboard_rows(db, sess: QuizSession) -> list[dict]:
    """Per student of the class: points and answers in this session."""
    points = func.coalesce(func.sum(Result.points), 0).label("points")
    rows = (
        db.query(Student.id, Student.naam, points, func.count(Result.id).label("answers"))
        .outerjoin(Result, (Result.leerling_id == Student.id) & (Result.sessie_id == sess.id))
        .filter(Student.klas_id == sess.klas_id)
        .group_by(Student.id, Student.naam)
        .order_by(desc("points"), Student.naam.asc(), Student.id.asc())
        .all()
    )
    return [
        {"leerling_id": r.id, "naam": r.naam, "points": int(r.points or 0), "answers": int(r.answers or 0)}
        for r in rows
    ]


def recent_answer_rows(db, session_id, limit=RECENT_ANSWERS_LIMIT) -> list[dict]:
    """Ungraded answers first, then newest first."""
    pending_first = case(
        (or_(Result.status.is_(None), Result.status == STATUS_UNKNOWN), 0),
        else_=1,
    )
    rows = (
        db.query(
            Result.id,
            Result.leerling_id,
            Student.naam.label("leerling"),
            Result.antwoord_given,
            Result.status,
            Result.points,
            Result.created_at,
            Question.vraag,
        )
        .join(Student, Student.id == Result.leerling_id)
        .outerjoin(Question, Question.id == Result.vraag_id)
        .filter(Result.sessie_id == session_id)
        .order_by(pending_first, Result.created_at.desc(), Result.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": r.id,
            "leerling_id": r.leerling_id,
            "leerling": r.leerling,
            "antwoord": r.antwoord_given,
            "status": r.status or STATUS_UNKNOWN,
            "points": r.points,
            "created_at": iso(r.created_at),
            "vraag": r.vraag,
        }
        for r in rows
    ]


def pending_count(db, session_id) -> int:
    return (
        db.query(func.count(Result.id))
        .filter(
            Result.sessie_id == session_id,
            or_(Result.status.is_(None), Result.status == STATUS_UNKNOWN),
        )
        .scalar()
        or 0
    )


def answer_count(db, session_id, vraag_id) -> int:
    if vraag_id is None:
        return 0
    return (
        db.query(func.count(Result.id))
        .filter(Result.sessie_id == session_id, Result.vraag_id == vraag_id)
        .scalar()
        or 0
    )


def export_rows(db, session_id) -> list[dict]:
    """All results of a session, oldest first, for the CSV export."""
    rows = (
        db.query(Student.naam, Question.vraag, Result.antwoord_given, Result.status, Result.created_at)
        .join(Student, Student.id == Result.leerling_id)
        .outerjoin(Question, Question.id == Result.vraag_id)
        .filter(Result.sessie_id == session_id)
        .order_by(Result.created_at.asc(), Result.id.asc())
        .all()
    )
    return [
        {
            "leerling": r[0],
            "vraag": r[1],
            "gegeven_antwoord": r[2],
            "status": r[3] or STATUS_UNKNOWN,
            "created_at": iso(r[4]),
        }
        for r in rows
    ]


# -------------------------------------------------
# SNAPSHOT
# -------------------------------------------------
def build_snapshot(db, session_id, presence, recent_limit=RECENT_ANSWERS_LIMIT):
    """Assemble the full teacher view of a session, or ``None`` if it is gone."""
    sess = db.get(QuizSession, session_id)
    if sess is None:
        return None
    klas = db.get(ClassGroup, sess.klas_id)

    current = None
    if sess.current_question_id is not None:
        question = db.get(Question, sess.current_question_id)
        if question is not None:
            current = {"id": question.id, "vraag": question.vraag, "antwoord": question.antwoord}

    students = db.query(Student).filter(Student.klas_id == sess.klas_id).order_by(Student.naam, Student.id).all()
    roster = []
    for student in students:
        entry = {"id": student.id, "naam": student.naam}
        entry.update(presence.view(student.id))
        roster.append(entry)

    return {
        "sess": serialize_session(sess, klas, asked_question_ids(db, sess.id)),
        "currentQuestion": current,
        "answerCount": answer_count(db, sess.id, current["id"]) if current else 0,
        "total_students": len(students),
        "leerlingen": roster,
        "scoreboard": scoreboard_rows(db, sess),
        "recentAnswers": recent_answer_rows(db, sess.id, recent_limit),
        "pending_count": pending_count(db, sess.id),
    }


def redact_for_student(snapshot: dict) -> dict:
    """Restricted copy of a snapshot. The input is not modified."""
    out = dict(snapshot or {})

    if out.get("currentQuestion"):
        out["currentQuestion"] = {k: v for k, v in out["currentQuestion"].items() if k != "antwoord"}

    if isinstance(out.get("leerlingen"), list):
        out["leerlingen"] = [
            {
                "id": entry.get("id"),
                "online": entry.get("online", False),
                "focused": entry.get("focused", False),
                "last_seen": entry.get("last_seen"),
            }
            for entry in out["leerlingen"]
        ]

    if isinstance(out.get("scoreboard"), list):
        out["scoreboard"] = [
            {"leerling_id": row.get("leerling_id"), "points": row.get("points"), "answers": row.get("answers")}
            for row in out["scoreboard"]
        ]

    if isinstance(out.get("recentAnswers"), list):
        out["recentAnswers"] = [
            {
                "antwoord": row.get("antwoord"),
                "status": row.get("status"),
                "points": row.get("points"),
                "created_at": row.get("created_at"),
                "vraag": row.get("vraag"),
            }
            for row in out["recentAnswers"]
        ]

    return out


# -------------------------------------------------
# STUDENT STATE
# -------------------------------------------------
def student_state(db, leerling: Student, sess: QuizSession | None) -> dict:
    """What one student's screen needs while polling the active session."""
    if sess is None:
        return {"session_ended": True}

    current = db.get(Question, sess.current_question_id) if sess.current_question_id else None
    already_answered = False
    all_answered = False
    if current is not None:
        already_answered = (
            db.query(Result.id)
            .filter_by(sessie_id=sess.id, vraag_id=current.id, leerling_id=leerling.id)
            .first()
            is not None
        )
        total = db.query(func.count(Student.id)).filter(Student.klas_id == sess.klas_id).scalar() or 0
        answered = (
            db.query(func.count(distinct(Result.leerling_id)))
            .filter(Result.sessie_id == sess.id, Result.vraag_id == current.id)
            .scalar()
            or 0
        )
        all_answered = answered >= total

    score, count = (
        db.query(func.coalesce(func.sum(Result.points), 0), func.count(Result.id))
        .filter(Result.sessie_id == sess.id, Result.leerling_id == leerling.id)
        .one()
    )
    recent = (
        db.query(Result, Question.vraag)
        .outerjoin(Question, Question.id == Result.vraag_id)
        .filter(Result.sessie_id == sess.id, Result.leerling_id == leerling.id)
        .order_by(Result.created_at.desc(), Result.id.desc())
        .limit(RECENT_ANSWERS_LIMIT)
        .all()
    )

    return {
        "session_id": sess.id,
        "current_question_id": current.id if current else None,
        "question_text": current.vraag if current else None,
        "already_answered": already_answered,
        "score": int(score or 0),
        "answer_count": int(count or 0),
        "recent_answers": [
            {
                "id": result.id,
                "question": vraag,
                "answer": result.antwoord_given,
                "status": result.status,
                "points": result.points,
                "created_at": iso(result.created_at),
            }
            for result, vraag in recent
        ],
        "all_answered": all_answered,
        # only revealed once the whole class has answered
        "correct_answer": current.antwoord if current is not None and all_answered else None,
    }

"""Lifecycle of a live quiz session.

Every operation validates ownership and state before it writes, commits its
change in one transaction and then asks the live state for exactly one
broadcast. A broadcast failure never undoes the write.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from errors import InvalidReference, NotFound, StoreFailure, Unauthorized
from grading import auto_grade, parse_status, points_for
from models import STATUS_CORRECT, ClassGroup, Question, QuestionList, QuizSession, Result, SessionQuestion, Student
from payload import asked_question_ids

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Dispatch:
    ok: bool
    vraag_id: int | None = None
    no_more: bool = False

    def to_dict(self):
        if self.ok:
            return {"ok": True, "vraag_id": self.vraag_id}
        return {"ok": False, "no_more": self.no_more}


@dataclass(frozen=True)
class Submission:
    success: bool
    status: str | None = None
    auto_graded: bool = False
    message: str | None = None

    def to_dict(self):
        if not self.success:
            return {"success": False, "message": self.message}
        return {"success": True, "status": self.status, "auto_graded": self.auto_graded}


ALREADY_ANSWERED = Submission(success=False, message="already answered")
NO_MORE_QUESTIONS = Dispatch(ok=False, no_more=True)


# -------------------------------------------------
# LOOKUPS
# -------------------------------------------------
def owned_session(db, session_id, teacher_id) -> QuizSession:
    sess = db.get(QuizSession, session_id)
    if sess is None:
        raise NotFound("sessie not found")
    if sess.docent_id != teacher_id:
        raise Unauthorized()
    return sess


def active_owned_session(db, session_id, teacher_id) -> QuizSession:
    sess = owned_session(db, session_id, teacher_id)
    if not sess.actief:
        raise NotFound("sessie is not active")
    return sess


def owned_class(db, klas_id, teacher_id) -> ClassGroup:
    klas = db.get(ClassGroup, klas_id)
    if klas is None or klas.docent_id != teacher_id:
        raise Unauthorized()
    return klas


def active_session_for_class(db, klas_id) -> QuizSession | None:
    return db.query(QuizSession).filter_by(klas_id=klas_id, actief=True).first()


def _commit(db, action):
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error("%s failed: %s", action, e)
        raise StoreFailure(str(e)) from e


# -------------------------------------------------
# START / STOP
# -------------------------------------------------
def start_session(db, live, teacher_id, klas_id, vragenlijst_id) -> QuizSession:
    owned_class(db, klas_id, teacher_id)
    lijst = db.query(QuestionList).filter_by(id=vragenlijst_id, klas_id=klas_id).first()
    if lijst is None:
        raise InvalidReference("vragenlijst not found for klas")

    now = _now()
    superseded = [s.id for s in db.query(QuizSession.id).filter_by(klas_id=klas_id, actief=True)]
    # deactivate-then-insert is one transaction; the partial unique index
    # rejects a concurrent second active session
    db.query(QuizSession).filter_by(klas_id=klas_id, actief=True).update(
        {
            QuizSession.actief: False,
            QuizSession.ended_at: now,
            QuizSession.current_question_id: None,
            QuizSession.question_start_time: None,
        },
        synchronize_session=False,
    )
    sess = QuizSession(
        klas_id=klas_id,
        docent_id=teacher_id,
        vragenlijst_id=vragenlijst_id,
        actief=True,
        started_at=now,
    )
    db.add(sess)
    _commit(db, "start_session")
    db.refresh(sess)
    logger.info("Session %s started for klas %s (superseded %s)", sess.id, klas_id, superseded)

    for old_id in superseded:
        live.broadcast_session(old_id)
    return sess


def stop_session(db, live, session_id, teacher_id) -> QuizSession:
    sess = owned_session(db, session_id, teacher_id)
    if sess.actief:
        sess.actief = False
        sess.ended_at = _now()
    sess.current_question_id = None
    sess.question_start_time = None
    _commit(db, "stop_session")
    logger.info("Session %s stopped", session_id)
    live.broadcast_session(session_id)
    return sess


# -------------------------------------------------
# QUESTION DISPATCH
# -------------------------------------------------
def send_next_question(db, live, session_id, teacher_id, rng=None) -> Dispatch:
    sess = active_owned_session(db, session_id, teacher_id)
    asked = asked_question_ids(db, sess.id)

    query = db.query(Question.id).filter(
        Question.klas_id == sess.klas_id,
        Question.vragenlijst_id == sess.vragenlijst_id,
    )
    if asked:
        query = query.filter(~Question.id.in_(asked))
    candidates = sorted(row[0] for row in query)
    if not candidates:
        logger.info("Session %s has no more questions", session_id)
        return NO_MORE_QUESTIONS

    vraag_id = (rng or random).choice(candidates)
    sess.current_question_id = vraag_id
    sess.question_start_time = _now()
    # stale answers from an earlier partial round of this question
    db.query(Result).filter_by(sessie_id=sess.id, vraag_id=vraag_id).delete(synchronize_session=False)
    # dispatch history only; a resend after an unanswered clear refreshes sent_at
    sent = db.query(SessionQuestion).filter_by(sessie_id=sess.id, vraag_id=vraag_id).first()
    if sent is None:
        db.add(SessionQuestion(sessie_id=sess.id, vraag_id=vraag_id, sent_at=sess.question_start_time))
    else:
        sent.sent_at = sess.question_start_time
    _commit(db, "send_question")
    logger.info("Session %s sent question %s", session_id, vraag_id)

    live.broadcast_session(session_id)
    return Dispatch(ok=True, vraag_id=vraag_id)


def clear_current_question(db, live, session_id, teacher_id) -> QuizSession:
    sess = active_owned_session(db, session_id, teacher_id)
    sess.current_question_id = None
    sess.question_start_time = None
    _commit(db, "clear_question")
    live.broadcast_session(session_id)
    return sess


# -------------------------------------------------
# ANSWERS
# -------------------------------------------------
def submit_answer(db, live, session_id, leerling_id, vraag_id, antwoord) -> Submission:
    sess = db.query(QuizSession).filter_by(id=session_id, actief=True).first()
    if sess is None:
        raise NotFound("sessie not found")
    if db.query(Student.id).filter_by(id=leerling_id, klas_id=sess.klas_id).first() is None:
        raise NotFound("leerling not found")
    question = (
        db.query(Question)
        .filter_by(id=vraag_id, klas_id=sess.klas_id, vragenlijst_id=sess.vragenlijst_id)
        .first()
    )
    if question is None:
        raise NotFound("vraag not found")

    existing = db.query(Result.id).filter_by(sessie_id=sess.id, vraag_id=vraag_id, leerling_id=leerling_id).first()
    if existing is not None:
        return ALREADY_ANSWERED

    status, points = auto_grade(antwoord, question.antwoord)
    db.add(
        Result(
            sessie_id=sess.id,
            leerling_id=leerling_id,
            vraag_id=vraag_id,
            antwoord_given=antwoord,
            status=status,
            points=points,
            created_at=_now(),
        )
    )
    try:
        db.commit()
    except IntegrityError:
        # a concurrent submission for the same triple won the insert
        db.rollback()
        return ALREADY_ANSWERED
    logger.info("Session %s: leerling %s answered vraag %s (%s)", session_id, leerling_id, vraag_id, status)

    live.broadcast_session(sess.id)
    return Submission(success=True, status=status, auto_graded=status == STATUS_CORRECT)


def grade_answer(db, live, resultaat_id, status, teacher_id) -> int:
    """Teacher override of a result's status; returns the session id."""
    status = parse_status(status)
    result = db.get(Result, resultaat_id)
    if result is None:
        raise NotFound("resultaat not found")
    sess = db.get(QuizSession, result.sessie_id)
    if sess is None or sess.docent_id != teacher_id:
        raise Unauthorized()

    result.status = status
    result.points = points_for(status)
    session_id = result.sessie_id
    _commit(db, "grade_answer")
    logger.info("Resultaat %s graded %s", resultaat_id, status)

    live.broadcast_session(session_id)
    return session_id


def remove_student(db, live, session_id, leerling_id, teacher_id) -> None:
    """Drop a student's answers in this session and the student from the class."""
    sess = owned_session(db, session_id, teacher_id)
    db.query(Result).filter_by(sessie_id=sess.id, leerling_id=leerling_id).delete(synchronize_session=False)
    student = db.query(Student).filter_by(id=leerling_id, klas_id=sess.klas_id).first()
    if student is not None:
        db.delete(student)
    _commit(db, "remove_student")
    live.presence.forget(leerling_id)
    live.broadcast_session(session_id)

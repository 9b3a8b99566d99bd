import os
from types import SimpleNamespace

import pytest

# must be set before config/db are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("UPDATE_SECRET", None)

from auth import issue_token  # noqa: E402
from db import Base, SessionLocal, engine  # noqa: E402
from live import LiveState  # noqa: E402
from main import create_app  # noqa: E402
from models import ClassGroup, Question, QuestionList, Student  # noqa: E402

TEACHER_ID = 1
OTHER_TEACHER_ID = 2


class RecordingConnection:
    """Connection that keeps every event it is sent."""

    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    def send(self, event, data):
        if self.fail:
            raise RuntimeError("connection dropped")
        self.events.append((event, data))


@pytest.fixture(scope="session")
def app():
    return create_app({"TESTING": True, "PRESENCE_TIMEOUT_SECONDS": 0})


@pytest.fixture(autouse=True)
def fresh_state(app):
    """Empty tables and a fresh live state for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.extensions["live"] = LiveState(SessionLocal, presence_timeout=0)
    yield


@pytest.fixture
def live(app):
    return app.extensions["live"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


def make_token(teacher_id):
    return issue_token(teacher_id, secret="test-secret")


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token(TEACHER_ID)}"}


@pytest.fixture
def other_headers():
    return {"Authorization": f"Bearer {make_token(OTHER_TEACHER_ID)}"}


@pytest.fixture
def seeded(db):
    """One class of teacher 1 with a list of three questions and two students."""
    klas = ClassGroup(docent_id=TEACHER_ID, naam="3B", klascode="ABC123", vak="Aardrijkskunde")
    db.add(klas)
    db.flush()
    lijst = QuestionList(klas_id=klas.id, naam="Hoofdsteden")
    db.add(lijst)
    db.flush()
    questions = [
        Question(klas_id=klas.id, vragenlijst_id=lijst.id, vraag="Hoofdstad van Frankrijk?", antwoord="Parijs"),
        Question(klas_id=klas.id, vragenlijst_id=lijst.id, vraag="Hoofdstad van Spanje?", antwoord="Madrid"),
        Question(klas_id=klas.id, vragenlijst_id=lijst.id, vraag="Hoofdstad van Italie?", antwoord="Rome"),
    ]
    students = [Student(klas_id=klas.id, naam="Anna"), Student(klas_id=klas.id, naam="Bram")]
    db.add_all(questions + students)
    db.commit()
    seed = SimpleNamespace(
        klas_id=klas.id,
        klascode=klas.klascode,
        vragenlijst_id=lijst.id,
        vraag_ids=[q.id for q in questions],
        antwoorden={q.id: q.antwoord for q in questions},
        anna=students[0].id,
        bram=students[1].id,
    )
    # later reads must see writes made through the app
    db.expire_all()
    return seed
